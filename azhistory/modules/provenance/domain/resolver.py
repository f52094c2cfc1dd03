from typing import Optional

import structlog

from azhistory.modules.provenance.domain.audit_miner import AuditLogMiner
from azhistory.modules.provenance.domain.models import (
    AuditEvent,
    OutcomeStatus,
    ProvenanceRecord,
    ReconciliationOutcome,
    Resource,
)
from azhistory.shared.core.exceptions import FATAL_ERRORS

logger = structlog.get_logger()


class ProvenanceResolver:
    """
    Decides the provenance of a single resource.

    Never writes anything. Per-resource query failures come back as a
    FAILED_RESOLUTION outcome; only session-level failures propagate.
    """

    def __init__(self, miner: AuditLogMiner, creator_tag: str, created_date_tag: str):
        self.miner = miner
        self.creator_tag = creator_tag
        self.created_date_tag = created_date_tag

    def is_tagged(self, resource: Resource) -> bool:
        return bool(resource.tags) and self.creator_tag in resource.tags

    async def resolve(self, resource: Resource) -> ReconciliationOutcome:
        if self.is_tagged(resource):
            tags = resource.tags or {}
            logger.debug(
                "resource_already_tagged",
                name=resource.name,
                resource_id=resource.id,
                creator=tags.get(self.creator_tag),
                created_date=tags.get(self.created_date_tag),
            )
            return ReconciliationOutcome.already_tagged(resource)

        try:
            event = await self.miner.find_earliest_human_event(resource.id)
        except FATAL_ERRORS:
            raise
        except Exception as e:
            logger.warning(
                "resource_provenance_query_failed",
                name=resource.name,
                resource_id=resource.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ReconciliationOutcome.failed(
                resource, e, OutcomeStatus.FAILED_RESOLUTION
            )

        record = self._record_for(resource, event)
        return ReconciliationOutcome.resolved(resource, record)

    def _record_for(self, resource: Resource, event: Optional[AuditEvent]) -> ProvenanceRecord:
        if event is None:
            # e.g. resource is older than the activity log retention
            logger.info(
                "resource_provenance_unknown",
                name=resource.name,
                resource_id=resource.id,
            )
            return ProvenanceRecord.unknown()

        record = ProvenanceRecord.from_event(event)
        logger.info(
            "resource_provenance_resolved",
            name=resource.name,
            resource_id=resource.id,
            creator=record.creator_value,
            created_date=record.created_date_value,
            operation=event.operation_name,
        )
        return record

