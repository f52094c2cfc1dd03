"""
Timeouts for external Azure calls.

Every listing page, activity log query and tag write goes through a
TimeoutManager so a stalled call surfaces as a typed error instead of
hanging the run.
"""

import asyncio
import time
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from typing import Any, TypeVar

import structlog

from azhistory.shared.core.exceptions import AzureHistoryError

logger = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 60.0

T = TypeVar("T")


class TimeoutManager:
    """Manages timeouts for external operations."""

    def __init__(
        self,
        operation_type: str = "default",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        error_cls: type[AzureHistoryError] = AzureHistoryError,
    ):
        self.operation_type = operation_type
        self.timeout_seconds = timeout_seconds
        self.error_cls = error_cls

    def _timeout_error(self, start_time: float) -> AzureHistoryError:
        execution_time = time.perf_counter() - start_time
        logger.warning(
            "operation_timed_out",
            operation_type=self.operation_type,
            execution_time_seconds=round(execution_time, 3),
            timeout_seconds=self.timeout_seconds,
        )
        return self.error_cls(
            f"Operation timed out after {self.timeout_seconds} seconds",
            code="timeout",
            details={
                "operation_type": self.operation_type,
                "timeout_seconds": self.timeout_seconds,
                "execution_time_seconds": round(execution_time, 3),
            },
        )

    async def execute_with_timeout(
        self,
        coro: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Execute a coroutine with timeout handling."""
        start_time = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                coro(*args, **kwargs), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            raise self._timeout_error(start_time) from None

        logger.debug(
            "operation_completed_within_timeout",
            operation_type=self.operation_type,
            execution_time_seconds=round(time.perf_counter() - start_time, 3),
        )
        return result

    async def iterate_with_timeout(
        self, source: AsyncIterable[T]
    ) -> AsyncIterator[T]:
        """
        Re-yield an async iterable, bounding the wait for each item.

        Pagers fetch a page lazily on the item that crosses a page boundary,
        so this bounds every page fetch without materialising the listing.
        """
        iterator = source.__aiter__()
        while True:
            start_time = time.perf_counter()
            try:
                item = await asyncio.wait_for(
                    iterator.__anext__(), timeout=self.timeout_seconds
                )
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError:
                raise self._timeout_error(start_time) from None
            yield item
