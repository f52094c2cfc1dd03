from typing import Optional

from azhistory.modules.provenance.domain.audit_miner import AuditLogMiner
from azhistory.modules.provenance.domain.models import RunSummary
from azhistory.modules.provenance.domain.ports import AuditEventSource, ResourceInventory
from azhistory.modules.provenance.domain.reconciler import Reconciler
from azhistory.modules.provenance.domain.resolver import ProvenanceResolver
from azhistory.shared.adapters.rate_limiter import RateLimiter
from azhistory.shared.core.config import Settings, get_settings


def build_reconciler(
    inventory: ResourceInventory,
    audit_source: AuditEventSource,
    settings: Optional[Settings] = None,
    concurrency: Optional[int] = None,
) -> Reconciler:
    """Wire the engine for one run. Nothing here outlives the returned object."""
    settings = settings or get_settings()
    limiter = RateLimiter(settings.AUDIT_QUERY_RATE_PER_SECOND)
    miner = AuditLogMiner(
        audit_source,
        lookback_days=settings.LOOKBACK_DAYS,
        rate_limiter=limiter,
        timeout_seconds=settings.CLOUD_API_TIMEOUT_SECONDS,
    )
    resolver = ProvenanceResolver(miner, settings.CREATOR_TAG, settings.CREATED_DATE_TAG)
    return Reconciler(
        inventory,
        resolver,
        concurrency=concurrency if concurrency is not None else settings.RECONCILE_CONCURRENCY,
        rate_limiter=limiter,
        timeout_seconds=settings.CLOUD_API_TIMEOUT_SECONDS,
    )


async def reconcile(
    inventory: ResourceInventory,
    audit_source: AuditEventSource,
    settings: Optional[Settings] = None,
    concurrency: Optional[int] = None,
) -> RunSummary:
    """
    Make sure every resource in the inventory carries provenance tags.

    Safe to re-run: resources that already have the creator tag are skipped
    without querying the activity log. Raises only for session-level
    failures (authentication, listing).
    """
    reconciler = build_reconciler(inventory, audit_source, settings, concurrency)
    return await reconciler.run()
