"""Management CLI for supplier integrations and batch fulfilment.

Usage:
    python -m dropship.cli sync-due          # Sync every integration whose interval elapsed
    python -m dropship.cli health-report     # Print health score for each active integration
    python -m dropship.cli auto-fulfill [--supplier ID] [--limit N] [--dry-run]
    python -m dropship.cli process-overdue [--days N] [--action notify|retry|cancel|escalate]
                                           [--supplier ID] [--limit N] [--dry-run]
"""

import argparse
import asyncio
import sys

from sqlalchemy import select

from dropship.auth.deps import SYSTEM_ACTOR
from dropship.config import settings
from dropship.database import async_session
from dropship.logging_setup import configure_logging
from dropship.models.supplier_integration import SupplierIntegration
from dropship.services.fulfilment import (
    OVERDUE_ACTIONS,
    process_auto_fulfillment,
    process_overdue_orders,
)
from dropship.services.integrations import get_health_score, health_label, run_due_syncs
from dropship.services.supplier_client import SupplierAPIClient


async def _run_in_session(work, *, dry_run: bool = False):
    """Run `work(db)` in one transaction; dry runs are always rolled back."""
    async with async_session() as db:
        try:
            result = await work(db)
            if dry_run:
                await db.rollback()
            else:
                await db.commit()
        except Exception:
            await db.rollback()
            raise
    return result


async def sync_due(args: argparse.Namespace) -> int:
    summary = await _run_in_session(lambda db: run_due_syncs(db, SupplierAPIClient()))
    print(
        f"  {summary['checked']} checked, {summary['synced']} synced, "
        f"{summary['failed']} failed, {summary['skipped']} skipped"
    )
    return 1 if summary["failed"] else 0


async def health_report(args: argparse.Namespace) -> int:
    async with async_session() as db:
        result = await db.execute(
            select(SupplierIntegration)
            .where(SupplierIntegration.is_active == True)  # noqa: E712
            .order_by(SupplierIntegration.name)
        )
        integrations = result.scalars().all()

    for integration in integrations:
        score = get_health_score(integration)
        print(
            f"  {integration.name:<30} {integration.integration_type:<8} "
            f"{score:>3} {health_label(score):<10} failures={integration.consecutive_failures}"
        )
    print(f"\n{len(integrations)} active integration(s)")
    return 0


def _print_errors(errors: list[str]) -> None:
    for line in errors:
        print(f"  ✗ {line}")


async def auto_fulfill(args: argparse.Namespace) -> int:
    tally = await _run_in_session(
        lambda db: process_auto_fulfillment(
            db, SYSTEM_ACTOR, supplier_id=args.supplier, limit=args.limit, dry_run=args.dry_run,
        ),
        dry_run=args.dry_run,
    )
    verb = "would be sent" if args.dry_run else "sent"
    print(
        f"  {tally['found']} pending, {tally['processed']} {verb}, "
        f"{tally['skipped']} skipped, {tally['failed']} failed"
    )
    _print_errors(tally["errors"])
    return 1 if tally["failed"] else 0


async def process_overdue(args: argparse.Namespace) -> int:
    stats = await _run_in_session(
        lambda db: process_overdue_orders(
            db, SYSTEM_ACTOR,
            action=args.action, days=args.days, supplier_id=args.supplier,
            limit=args.limit, dry_run=args.dry_run,
        ),
        dry_run=args.dry_run,
    )
    mode = "dry run" if args.dry_run else args.action
    print(
        f"  {stats['total_orders']} overdue, {stats['processed']} processed ({mode}), "
        f"{stats['failed']} failed"
    )
    _print_errors(stats["errors"])
    return 1 if stats["failed"] else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m dropship.cli",
        description="Supplier sync and dropship fulfilment jobs",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("sync-due", help="Sync integrations whose interval elapsed").set_defaults(
        handler=sync_due
    )
    commands.add_parser("health-report", help="Health score per active integration").set_defaults(
        handler=health_report
    )

    fulfil = commands.add_parser("auto-fulfill", help="Send pending orders of auto-fulfil suppliers")
    fulfil.set_defaults(handler=auto_fulfill)

    overdue = commands.add_parser("process-overdue", help="Act on overdue dropship orders")
    overdue.set_defaults(handler=process_overdue)
    overdue.add_argument(
        "--days",
        type=int,
        default=settings.overdue_after_days,
        help=f"Days past the delivery estimate (default: {settings.overdue_after_days})",
    )
    overdue.add_argument(
        "--action",
        choices=OVERDUE_ACTIONS,
        default="notify",
        help="What to do with each overdue order (default: notify)",
    )

    for sub in (fulfil, overdue):
        sub.add_argument("--supplier", help="Only this supplier ID")
        sub.add_argument(
            "--limit",
            type=int,
            default=settings.fulfilment_batch_limit,
            help=f"Maximum orders to process (default: {settings.fulfilment_batch_limit})",
        )
        sub.add_argument(
            "--dry-run",
            action="store_true",
            help="Report what would be done without changing anything",
        )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level)
    sys.exit(asyncio.run(args.handler(args)))


if __name__ == "__main__":
    main()
