"""CLI to run one reconciliation pass."""

import argparse
import asyncio
import sys
from pathlib import Path

from rich.table import Table

from moonstore.core.config import MoonStoreConf
from moonstore.instances.config import settings
from moonstore.instances.services import build_orchestrator
from moonstore.instances.storage import get_storage, set_storage
from moonstore.services.reconcile import ReconcileReport
from moonstore.utils.cli import console
from moonstore.utils.logger import get_logger, setup_logger
from moonstore.version import PROGRAM_NAME, __version__

logger = get_logger(__name__)


def print_report(report: ReconcileReport) -> None:
    """Summarise a run for humans."""
    table = Table(title="Reconciliation")
    table.add_column("Pass")
    table.add_column("Result")

    refresh = report.refresh
    refresh_result = (
        f"error: {refresh.error}"
        if refresh.error
        else (
            f"{refresh.users} users, {refresh.play_records_updated} play records and "
            f"{refresh.favorites_updated} favorites updated, {refresh.skipped} skipped, {refresh.failed} failed"
        )
    )
    table.add_row("Refresh records", refresh_result)

    cleanup = report.cleanup
    if cleanup.error:
        cleanup_result = f"error: {cleanup.error}"
    elif not cleanup.enabled:
        cleanup_result = "disabled"
    else:
        cleanup_result = f"{cleanup.checked} checked, {len(cleanup.deleted)} deleted, {len(cleanup.failed)} failed"
    table.add_row("Clean inactive users", cleanup_result)

    console.print(table)
    if cleanup.deleted:
        console.print("Deleted: " + ", ".join(cleanup.deleted))


async def run_once() -> ReconcileReport:
    try:
        orchestrator = await build_orchestrator()
        return await orchestrator.run()
    finally:
        await get_storage().close()
        set_storage(None)


def main() -> None:
    """CLI for a single reconciliation run."""
    parser = argparse.ArgumentParser(description=f"{PROGRAM_NAME} {__version__} reconciliation job.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a configuration file, the instance config is used otherwise.",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging, -vv for trace.")
    args = parser.parse_args()

    if args.config is not None:
        if not args.config.is_file():
            console.print(f"No configuration at: {args.config}")
            sys.exit(1)
        settings.update_from(MoonStoreConf.force_load_config_file(args.config))

    settings.logging.setup_verbosity_cli(args.verbose)
    setup_logger(settings=settings.logging)

    console.print(f"{PROGRAM_NAME} reconciliation v{__version__}, storage backend: {settings.storage.backend}")
    report = asyncio.run(run_once())
    print_report(report)

    failed = report.refresh.error or report.cleanup.error
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
