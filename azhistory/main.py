"""
Command line entry point.

Interactive use reconciles the subscription and prints the provenance
report; ``--no-report`` is the scheduled mode, which only logs the run
summary.
"""
import argparse
import asyncio
import sys
from typing import List, Optional, Sequence

import structlog
from pydantic import ValidationError

from azhistory.modules.provenance.domain.models import Resource, RunSummary
from azhistory.modules.provenance.domain.report import render_report
from azhistory.modules.provenance.domain.service import reconcile
from azhistory.shared.adapters.azure import AzureAdapter
from azhistory.shared.core.config import Settings, get_settings
from azhistory.shared.core.credentials import AzureCredentials
from azhistory.shared.core.exceptions import (
    AuthenticationError,
    AzureHistoryError,
    InventoryListError,
)
from azhistory.shared.core.logging import setup_logging
from azhistory.shared.core.timeout import TimeoutManager

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="azhistory",
        description="Tag Azure resources with who created them, and when.",
    )
    parser.add_argument(
        "--no-report",
        action="store_true",
        help="Skip the CSV report (scheduled runs)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Resources processed in parallel (default: RECONCILE_CONCURRENCY)",
    )
    return parser


async def run(
    settings: Settings,
    report: bool = True,
    concurrency: Optional[int] = None,
    adapter: Optional[AzureAdapter] = None,
) -> RunSummary:
    adapter = adapter or AzureAdapter(AzureCredentials.from_settings(settings))
    async with adapter:
        verify_timeout = TimeoutManager(
            "verify_connection", settings.CLOUD_API_TIMEOUT_SECONDS, AuthenticationError
        )
        subscription = await verify_timeout.execute_with_timeout(adapter.verify_connection)
        print(f"SUBSCRIPTION: {subscription}")

        summary = await reconcile(adapter, adapter, settings, concurrency)

        if report:
            # Read back from Azure so the report shows what actually landed.
            list_timeout = TimeoutManager(
                "inventory_list", settings.CLOUD_API_TIMEOUT_SECONDS, InventoryListError
            )
            resources: List[Resource] = [
                r async for r in list_timeout.iterate_with_timeout(adapter.list_resources())
            ]
            for line in render_report(resources, settings):
                print(line)
    return summary


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.concurrency is not None and args.concurrency < 1:
        print("--concurrency must be at least 1", file=sys.stderr)
        return 2

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid settings: {e}", file=sys.stderr)
        return 1

    setup_logging()
    try:
        summary = asyncio.run(
            run(settings, report=not args.no_report, concurrency=args.concurrency)
        )
    except AzureHistoryError as e:
        logger.error("reconciliation_aborted", error=e.message, code=e.code)
        return 1

    if summary.failed:
        logger.warning(
            "reconciliation_partial_failures",
            failed_resources=[o.resource_id for o in summary.failures],
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
