from .models import (
    AuditEvent,
    OutcomeStatus,
    ProvenanceRecord,
    ReconciliationOutcome,
    Resource,
    RunSummary,
)
from .event_filter import is_human_caller
from .audit_miner import AuditLogMiner
from .resolver import ProvenanceResolver
from .reconciler import Reconciler
from .service import build_reconciler, reconcile
from .report import render_report

__all__ = [
    "AuditEvent",
    "OutcomeStatus",
    "ProvenanceRecord",
    "ReconciliationOutcome",
    "Resource",
    "RunSummary",
    "is_human_caller",
    "AuditLogMiner",
    "ProvenanceResolver",
    "Reconciler",
    "build_reconciler",
    "reconcile",
    "render_report",
]
