"""
Activity log mining.

Finds the earliest event on a resource whose caller looks human, inside a
bounded trailing window. Creation is normally the first human action on a
resource; anything older than the window has aged out of the log and is
reported as "no event" rather than an error.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

import structlog

from azhistory.modules.provenance.domain.event_filter import is_human_caller
from azhistory.modules.provenance.domain.models import AuditEvent
from azhistory.modules.provenance.domain.ports import AUDIT_EVENT_FIELDS, AuditEventSource
from azhistory.shared.adapters.rate_limiter import RateLimiter
from azhistory.shared.core.exceptions import AuditQueryError, AzureHistoryError
from azhistory.shared.core.timeout import DEFAULT_TIMEOUT_SECONDS, TimeoutManager

logger = structlog.get_logger()

DEFAULT_LOOKBACK_DAYS = 60


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def order_events(events: Iterable[AuditEvent]) -> List[AuditEvent]:
    """
    Sort events ascending by timestamp. Events without a timestamp sort last,
    keeping their relative order.
    """
    return sorted(
        events,
        key=lambda e: (e.timestamp is None, _as_utc(e.timestamp) if e.timestamp else None),
    )


def select_earliest_human_event(events: Iterable[AuditEvent]) -> Optional[AuditEvent]:
    for event in order_events(events):
        if is_human_caller(event):
            return event
    return None


class AuditLogMiner:
    def __init__(
        self,
        source: AuditEventSource,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        clock: Callable[[], datetime] = _utc_now,
        rate_limiter: Optional[RateLimiter] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.source = source
        self.lookback_days = lookback_days
        self.clock = clock
        self.rate_limiter = rate_limiter
        self.timeout = TimeoutManager("audit_query", timeout_seconds, AuditQueryError)

    def window(self) -> tuple[datetime, datetime]:
        end = self.clock()
        return end - timedelta(days=self.lookback_days), end

    async def find_earliest_human_event(
        self,
        resource_id: str,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> Optional[AuditEvent]:
        """
        Return the earliest human-attributed event in the window, or None.

        A failed query raises AuditQueryError; it is never reported as None,
        otherwise a transient outage would be recorded as unknown provenance
        for good.
        """
        default_start, default_end = self.window()
        start = window_start or default_start
        end = window_end or default_end

        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()
        try:
            events = await self.timeout.execute_with_timeout(
                self.source.query_events, resource_id, start, end, AUDIT_EVENT_FIELDS
            )
        except AzureHistoryError:
            raise
        except Exception as e:
            raise AuditQueryError(
                f"Activity log query failed for {resource_id}: {e}",
                details={"resource_id": resource_id},
            ) from e

        event = select_earliest_human_event(events)
        logger.debug(
            "audit_log_mined",
            resource_id=resource_id,
            events_scanned=len(events),
            found=event is not None,
        )
        return event
