"""
Reconciliation driver.

Walks the inventory in listing order and, per resource, runs a resolve phase
(read-only) followed by a write phase (conditional tag update). Per-resource
failures are isolated into the run summary; only session-level failures
abort the run.
"""
import asyncio
import time
import uuid
from typing import List, Optional

import structlog

from azhistory.modules.provenance.domain.models import (
    OutcomeStatus,
    ProvenanceRecord,
    ReconciliationOutcome,
    Resource,
    RunSummary,
)
from azhistory.modules.provenance.domain.ports import ResourceInventory
from azhistory.modules.provenance.domain.resolver import ProvenanceResolver
from azhistory.shared.adapters.rate_limiter import RateLimiter
from azhistory.shared.core.exceptions import (
    FATAL_ERRORS,
    InventoryListError,
    MetadataWriteConflictError,
    MetadataWriteError,
)
from azhistory.shared.core.ops_metrics import RECONCILE_OUTCOMES, RECONCILE_RUN_DURATION
from azhistory.shared.core.timeout import DEFAULT_TIMEOUT_SECONDS, TimeoutManager

logger = structlog.get_logger()


class Reconciler:
    def __init__(
        self,
        inventory: ResourceInventory,
        resolver: ProvenanceResolver,
        concurrency: int = 1,
        rate_limiter: Optional[RateLimiter] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.inventory = inventory
        self.resolver = resolver
        self.concurrency = concurrency
        self.rate_limiter = rate_limiter
        self.list_timeout = TimeoutManager("inventory_list", timeout_seconds, InventoryListError)
        self.write_timeout = TimeoutManager("tag_write", timeout_seconds, MetadataWriteError)

    async def run(self) -> RunSummary:
        run_id = str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(run_id=run_id)
        start_time = time.perf_counter()
        status = "failure"
        logger.info("reconciliation_started", concurrency=self.concurrency)
        try:
            summary = await self._run()
            status = "success"
        finally:
            duration = time.perf_counter() - start_time
            RECONCILE_RUN_DURATION.labels(status=status).observe(duration)
            structlog.contextvars.unbind_contextvars("run_id")

        logger.info(
            "reconciliation_completed",
            duration_seconds=round(duration, 3),
            **summary.as_dict(),
        )
        return summary

    async def _run(self) -> RunSummary:
        semaphore = asyncio.Semaphore(self.concurrency)
        tasks: List[asyncio.Task[ReconciliationOutcome]] = []
        # First session-level failure raised by any worker. Recorded before
        # the worker releases its slot, so the listing loop sees it before
        # starting another resource.
        fatal: List[BaseException] = []

        async def bounded(resource: Resource) -> ReconciliationOutcome:
            try:
                return await self.process(resource)
            except FATAL_ERRORS as e:
                fatal.append(e)
                current = asyncio.current_task()
                for task in tasks:
                    if task is not current:
                        task.cancel()
                raise
            finally:
                semaphore.release()

        try:
            async for resource in self.list_timeout.iterate_with_timeout(
                self.inventory.list_resources()
            ):
                # Acquire before spawning so listing never runs far ahead of
                # the workers.
                await semaphore.acquire()
                if fatal:
                    semaphore.release()
                    raise fatal[0]
                tasks.append(asyncio.create_task(bounded(resource)))
        except BaseException as e:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if isinstance(e, FATAL_ERRORS) or not isinstance(e, Exception):
                raise
            raise InventoryListError(f"Resource listing failed: {e}") from e

        results = await asyncio.gather(*tasks, return_exceptions=True)
        if fatal:
            raise fatal[0]

        summary = RunSummary()
        for result in results:
            if isinstance(result, BaseException):
                raise result
            summary.record(result)
            RECONCILE_OUTCOMES.labels(outcome=result.status.value).inc()
        return summary

    async def process(self, resource: Resource) -> ReconciliationOutcome:
        outcome = await self.resolver.resolve(resource)
        if outcome.status is not OutcomeStatus.RESOLVED or outcome.record is None:
            return outcome
        return await self.write(resource, outcome.record)

    async def write(
        self, resource: Resource, record: ProvenanceRecord
    ) -> ReconciliationOutcome:
        new_tags = dict(resource.tags or {})
        new_tags.update(
            record.to_tags(self.resolver.creator_tag, self.resolver.created_date_tag)
        )

        log = logger.bind(
            name=resource.name,
            resource_id=resource.id,
            creator=record.creator_value,
            created_date=record.created_date_value,
        )
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()
        try:
            await self.write_timeout.execute_with_timeout(
                self.inventory.update_resource_tags,
                resource.id,
                resource.version,
                new_tags,
            )
        except FATAL_ERRORS:
            raise
        except MetadataWriteConflictError as e:
            log.warning("resource_tag_write_conflict", error=str(e))
            return ReconciliationOutcome.failed(resource, e, OutcomeStatus.FAILED_WRITE)
        except Exception as e:
            log.error("resource_tag_write_failed", error=str(e), error_type=type(e).__name__)
            return ReconciliationOutcome.failed(resource, e, OutcomeStatus.FAILED_WRITE)

        # Local copy only reflects the write once it has landed.
        resource.tags = new_tags
        log.info("resource_tagged")
        return ReconciliationOutcome.resolved(resource, record)
