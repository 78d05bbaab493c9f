"""Batch fulfilment passes run from cron (`python -m dropship.cli ...`).

  process_auto_fulfillment → send pending orders of auto-fulfil suppliers
  process_overdue_orders   → notify / retry / cancel / escalate late orders

Each order is handled in its own savepoint: one bad order is tallied and
the batch moves on.  With `dry_run` nothing is written; the tallies report
what would have happened.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.auth.deps import Actor
from dropship.config import settings
from dropship.middleware.exceptions import DropshipError, ValidationError
from dropship.models.dropship_order import DropshipOrder, DropshipStatus, TERMINAL_STATUSES
from dropship.models.supplier import Supplier, SupplierStatus
from dropship.models.supplier_product import SupplierProduct, SyncStatus
from dropship.services import dropship_orders as order_service
from dropship.services.integrations import get_active_integration
from dropship.utils.activity import log_activity
from dropship.utils.clock import utcnow

logger = logging.getLogger(__name__)

OVERDUE_ACTIONS = ("notify", "retry", "cancel", "escalate")

# action → counter it bumps in the overdue tally
_ACTION_COUNTER = {
    "notify": "notified",
    "retry": "retried",
    "cancel": "cancelled",
    "escalate": "escalated",
}


# ── Auto-fulfilment ──────────────────────────────────────────

async def auto_fulfill_blocker(
    db: AsyncSession, order: DropshipOrder, now: datetime
) -> str | None:
    """Reason an order must wait for a human, or None if it can go out."""
    if await get_active_integration(db, order.supplier_id) is None:
        return "supplier has no active integration"

    max_age = timedelta(hours=settings.auto_fulfill_max_age_hours)
    if now - order.created_at > max_age:
        return f"order is older than {settings.auto_fulfill_max_age_hours} hours"

    if order.retry_count >= settings.dropship_max_retry_attempts:
        return "retry limit reached"

    for item in order.items:
        supplier_product = (
            await db.get(SupplierProduct, item.supplier_product_id)
            if item.supplier_product_id else None
        )
        if (
            supplier_product is None
            or not supplier_product.is_active
            or supplier_product.sync_status == SyncStatus.DISCONTINUED.value
        ):
            return f"catalog entry {item.supplier_sku} is no longer available"
    return None


async def process_auto_fulfillment(
    db: AsyncSession,
    actor: Actor,
    *,
    supplier_id: str | None = None,
    limit: int | None = None,
    dry_run: bool = False,
    now: datetime | None = None,
) -> dict:
    """Send pending orders of active, auto-fulfil suppliers, oldest first."""
    now = now or utcnow()
    stmt = (
        select(DropshipOrder)
        .join(Supplier, Supplier.id == DropshipOrder.supplier_id)
        .where(
            DropshipOrder.status == DropshipStatus.PENDING.value,
            Supplier.auto_fulfill == True,  # noqa: E712
            Supplier.status == SupplierStatus.ACTIVE.value,
        )
    )
    if supplier_id:
        stmt = stmt.where(DropshipOrder.supplier_id == supplier_id)
    stmt = stmt.order_by(DropshipOrder.created_at).limit(limit or settings.fulfilment_batch_limit)
    orders = (await db.execute(stmt)).scalars().all()

    tally = {"found": len(orders), "processed": 0, "skipped": 0, "failed": 0, "errors": []}
    for order in orders:
        order_id = order.id
        reason = await auto_fulfill_blocker(db, order, now)
        if reason:
            tally["skipped"] += 1
            logger.info(
                "Auto-fulfilment skipped order",
                extra={"dropship_order_id": order_id, "reason": reason},
            )
            continue
        if dry_run:
            tally["processed"] += 1
            continue

        try:
            async with db.begin_nested():
                await order_service.send_to_supplier(db, actor, order, now=now)
            tally["processed"] += 1
        except DropshipError as e:
            tally["failed"] += 1
            tally["errors"].append(f"{order_id}: {e.message}")
        except Exception as e:
            logger.exception("Auto-fulfilment failed for dropship order %s", order_id)
            tally["failed"] += 1
            tally["errors"].append(f"{order_id}: {e}")

    logger.info(
        "Auto-fulfilment complete",
        extra={
            "found": tally["found"],
            "processed": tally["processed"],
            "skipped": tally["skipped"],
            "failed": tally["failed"],
            "dry_run": dry_run,
        },
    )
    return tally


# ── Overdue orders ───────────────────────────────────────────

def days_past_due(order: DropshipOrder, now: datetime) -> int:
    if order.estimated_delivery is not None:
        return max(0, (now.date() - order.estimated_delivery).days)
    if order.sent_to_supplier_at is not None:
        expected = order.sent_to_supplier_at + timedelta(days=settings.default_processing_days)
        return max(0, (now - expected).days)
    return 0


async def find_overdue_orders(
    db: AsyncSession,
    *,
    days: int,
    supplier_id: str | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> list[DropshipOrder]:
    """Open orders whose delivery estimate (or send date, lacking one) is `days` behind."""
    now = now or utcnow()
    cutoff = now - timedelta(days=days)
    stmt = select(DropshipOrder).where(
        or_(
            DropshipOrder.estimated_delivery < cutoff.date(),
            and_(
                DropshipOrder.estimated_delivery.is_(None),
                DropshipOrder.sent_to_supplier_at < cutoff,
            ),
        ),
        DropshipOrder.status.notin_(TERMINAL_STATUSES),
    )
    if supplier_id:
        stmt = stmt.where(DropshipOrder.supplier_id == supplier_id)
    stmt = stmt.order_by(DropshipOrder.created_at).limit(limit or settings.fulfilment_batch_limit)
    return list((await db.execute(stmt)).scalars().all())


async def _notify(db: AsyncSession, actor: Actor, order: DropshipOrder, overdue: int, now: datetime):
    logger.warning(
        "Overdue dropship order",
        extra={
            "dropship_order_id": order.id,
            "order_id": order.order_id,
            "supplier_id": order.supplier_id,
            "days_past_due": overdue,
        },
    )
    await log_activity(
        db, actor,
        action="overdue_notified",
        entity_type="dropship_order",
        entity_id=order.id,
        summary=f"Overdue by {overdue} days",
        details={"days_past_due": overdue},
    )


async def _retry(db: AsyncSession, actor: Actor, order: DropshipOrder, overdue: int, now: datetime):
    await order_service.retry(db, actor, order, now=now)


async def _cancel(db: AsyncSession, actor: Actor, order: DropshipOrder, overdue: int, now: datetime):
    reason = f"Automatically cancelled - overdue by {overdue} days"
    await order_service.mark_as_cancelled(db, actor, order, reason, now=now)


async def _escalate(db: AsyncSession, actor: Actor, order: DropshipOrder, overdue: int, now: datetime):
    order.notes = order_service.append_note(
        order.notes, f"Escalated: overdue by {overdue} days on {now:%Y-%m-%d %H:%M}"
    )
    await db.flush()
    logger.critical(
        "Escalation: severely overdue dropship order",
        extra={
            "dropship_order_id": order.id,
            "order_id": order.order_id,
            "supplier_id": order.supplier_id,
            "days_past_due": overdue,
            "total_retail": order.total_retail,
        },
    )
    await log_activity(
        db, actor,
        action="escalated",
        entity_type="dropship_order",
        entity_id=order.id,
        summary=f"Escalated, overdue by {overdue} days",
        details={"days_past_due": overdue},
    )


_HANDLERS = {
    "notify": _notify,
    "retry": _retry,
    "cancel": _cancel,
    "escalate": _escalate,
}


async def process_overdue_orders(
    db: AsyncSession,
    actor: Actor,
    *,
    action: str = "notify",
    days: int | None = None,
    supplier_id: str | None = None,
    limit: int | None = None,
    dry_run: bool = False,
    now: datetime | None = None,
) -> dict:
    """Apply `action` to every overdue order.

    A retry that the order does not qualify for, or a cancel the state
    machine refuses, counts as a failure for that order only.
    """
    if action not in OVERDUE_ACTIONS:
        raise ValidationError(
            f"Unknown overdue action: {action}", {"allowed": list(OVERDUE_ACTIONS)}
        )
    now = now or utcnow()
    days = settings.overdue_after_days if days is None else days
    orders = await find_overdue_orders(db, days=days, supplier_id=supplier_id, limit=limit, now=now)

    stats = {
        "total_orders": len(orders),
        "processed": 0,
        "failed": 0,
        "notified": 0,
        "retried": 0,
        "cancelled": 0,
        "escalated": 0,
        "errors": [],
    }
    handler = _HANDLERS[action]
    for order in orders:
        order_id = order.id
        overdue = days_past_due(order, now)
        if dry_run:
            stats["processed"] += 1
            continue

        try:
            async with db.begin_nested():
                await handler(db, actor, order, overdue, now)
            stats["processed"] += 1
            stats[_ACTION_COUNTER[action]] += 1
        except DropshipError as e:
            stats["failed"] += 1
            stats["errors"].append(f"{order_id}: {e.message}")
        except Exception as e:
            logger.exception("Overdue processing failed for dropship order %s", order_id)
            stats["failed"] += 1
            stats["errors"].append(f"{order_id}: {e}")

    logger.info(
        "Overdue dropship orders processed",
        extra={
            "action": action,
            "days": days,
            "total_orders": stats["total_orders"],
            "processed": stats["processed"],
            "failed": stats["failed"],
            "dry_run": dry_run,
        },
    )
    return stats
