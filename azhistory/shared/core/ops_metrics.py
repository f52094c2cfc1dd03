"""
Prometheus metrics for reconciliation runs.

The host process decides whether and how to expose them.
"""

from prometheus_client import Counter, Histogram

RECONCILE_OUTCOMES = Counter(
    "azhistory_reconcile_outcomes_total",
    "Per-resource reconciliation outcomes",
    ["outcome"],
)

RECONCILE_RUN_DURATION = Histogram(
    "azhistory_reconcile_run_duration_seconds",
    "Duration of a full reconciliation run",
    ["status"],
    buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1800),
)
