from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from azhistory.shared.core.config import UNKNOWN_TAG_VALUE

DATE_FORMAT = "%Y-%m-%d"


@dataclass
class Resource:
    """A cloud resource as returned by the inventory listing."""
    id: str
    type: str
    name: str
    tags: Optional[Dict[str, str]] = None
    kind: Optional[str] = None
    # Fingerprint of the tags observed at listing time, used for the
    # conditional write-back.
    version: Optional[str] = None


@dataclass(frozen=True)
class AuditEvent:
    caller: Optional[str]
    timestamp: Optional[datetime]
    operation_name: str = ""


@dataclass(frozen=True)
class ProvenanceRecord:
    """
    Inferred creator and creation date of a resource.

    None stands for "unknown" on either field and is rendered as the
    ``<unknown>`` sentinel when persisted.
    """
    creator: Optional[str] = None
    created_date: Optional[date] = None

    @classmethod
    def unknown(cls) -> "ProvenanceRecord":
        return cls()

    @classmethod
    def from_event(cls, event: AuditEvent) -> "ProvenanceRecord":
        created = None
        if event.timestamp is not None:
            ts = event.timestamp
            if ts.tzinfo is not None:
                ts = ts.astimezone(timezone.utc)
            created = ts.date()
        return cls(creator=event.caller, created_date=created)

    @property
    def creator_value(self) -> str:
        return self.creator if self.creator else UNKNOWN_TAG_VALUE

    @property
    def created_date_value(self) -> str:
        if self.created_date is None:
            return UNKNOWN_TAG_VALUE
        return self.created_date.strftime(DATE_FORMAT)

    def to_tags(self, creator_key: str, created_date_key: str) -> Dict[str, str]:
        """Both reserved keys, always together."""
        return {
            creator_key: self.creator_value,
            created_date_key: self.created_date_value,
        }


class OutcomeStatus(str, Enum):
    ALREADY_TAGGED = "already_tagged"
    RESOLVED = "resolved"
    FAILED_RESOLUTION = "failed_resolution"
    FAILED_WRITE = "failed_write"


@dataclass(frozen=True)
class ReconciliationOutcome:
    """Per-resource result of a run. Reported and logged, never persisted."""
    status: OutcomeStatus
    resource_id: str
    resource_name: str = ""
    record: Optional[ProvenanceRecord] = None
    error: Optional[Exception] = None

    @classmethod
    def already_tagged(cls, resource: Resource) -> "ReconciliationOutcome":
        return cls(OutcomeStatus.ALREADY_TAGGED, resource.id, resource.name)

    @classmethod
    def resolved(cls, resource: Resource, record: ProvenanceRecord) -> "ReconciliationOutcome":
        return cls(OutcomeStatus.RESOLVED, resource.id, resource.name, record=record)

    @classmethod
    def failed(
        cls, resource: Resource, error: Exception, status: OutcomeStatus
    ) -> "ReconciliationOutcome":
        return cls(status, resource.id, resource.name, error=error)

    @property
    def is_failure(self) -> bool:
        return self.status in (OutcomeStatus.FAILED_RESOLUTION, OutcomeStatus.FAILED_WRITE)


@dataclass
class RunSummary:
    already_tagged: int = 0
    resolved: int = 0
    failed_resolution: int = 0
    failed_write: int = 0
    outcomes: List[ReconciliationOutcome] = field(default_factory=list)

    def record(self, outcome: ReconciliationOutcome) -> None:
        # Only ever called from the event loop thread and contains no await,
        # so concurrent workers cannot interleave inside it.
        if outcome.status is OutcomeStatus.ALREADY_TAGGED:
            self.already_tagged += 1
        elif outcome.status is OutcomeStatus.RESOLVED:
            self.resolved += 1
        elif outcome.status is OutcomeStatus.FAILED_RESOLUTION:
            self.failed_resolution += 1
        else:
            self.failed_write += 1
        self.outcomes.append(outcome)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def failed(self) -> int:
        return self.failed_resolution + self.failed_write

    @property
    def failures(self) -> List[ReconciliationOutcome]:
        return [o for o in self.outcomes if o.is_failure]

    def as_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "already_tagged": self.already_tagged,
            "resolved": self.resolved,
            "failed_resolution": self.failed_resolution,
            "failed_write": self.failed_write,
        }
