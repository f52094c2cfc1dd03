from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Protocol, Sequence

from azhistory.modules.provenance.domain.models import AuditEvent, Resource

AUDIT_EVENT_FIELDS = ("caller", "eventTimestamp", "operationName")


class ResourceInventory(Protocol):
    """Paginated listing plus conditional tag write-back."""

    def list_resources(self) -> AsyncIterator[Resource]:
        """Lazily yield every resource in the subscription."""

    async def update_resource_tags(
        self,
        resource_id: str,
        expected_version: Optional[str],
        new_tags: Dict[str, str],
    ) -> None:
        """
        Write ``new_tags`` onto the resource in a single request.

        Raises MetadataWriteConflictError when the resource no longer matches
        ``expected_version``, MetadataWriteError on any other failure.
        """


class AuditEventSource(Protocol):
    async def query_events(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        fields: Sequence[str] = AUDIT_EVENT_FIELDS,
    ) -> List[AuditEvent]:
        """Events scoped to one resource and time range. Raises AuditQueryError."""
