"""Dropship order lifecycle service.

Every status change goes through `_transition`, which checks the move
against ALLOWED_FROM, stamps the matching timestamp, mirrors the status
onto the items and writes an audit row.  The generic `update_status` (used
by the bulk endpoint) dispatches to the same per-status functions, so the
rules cannot be bypassed.

Retry is bounded by `settings.dropship_max_retry_attempts` and only
applies to orders that are still waiting on the supplier.
"""

import logging
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.auth.deps import Actor
from dropship.config import settings
from dropship.middleware.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    RetryNotAllowedError,
    ValidationError,
)
from dropship.models.dropship_order import (
    DropshipOrder,
    DropshipOrderItem,
    DropshipStatus,
    TERMINAL_STATUSES,
)
from dropship.models.order import Order, OrderItem
from dropship.models.supplier import Supplier
from dropship.models.supplier_product import SupplierProduct
from dropship.schemas.dropship_order import DropshipOrderCreate, DropshipOrderUpdate, StatusChangeRequest
from dropship.services.integrations import get_active_integration
from dropship.utils.activity import log_activity
from dropship.utils.clock import utcnow

logger = logging.getLogger(__name__)

S = DropshipStatus

# target status → states it may be entered from
ALLOWED_FROM: dict[str, set[str]] = {
    S.SENT_TO_SUPPLIER.value: {S.PENDING.value},
    S.CONFIRMED.value: {S.PENDING.value, S.SENT_TO_SUPPLIER.value, S.CONFIRMED.value},
    S.SHIPPED.value: {S.SENT_TO_SUPPLIER.value, S.CONFIRMED.value, S.SHIPPED.value},
    S.DELIVERED.value: {S.SENT_TO_SUPPLIER.value, S.CONFIRMED.value, S.SHIPPED.value},
    S.CANCELLED.value: {s.value for s in S} - {S.DELIVERED.value},
}

RETRY_ELIGIBLE = {S.PENDING.value, S.SENT_TO_SUPPLIER.value}
DELETABLE = {S.PENDING.value, S.CANCELLED.value}

_TIMESTAMP_FIELD = {
    S.SENT_TO_SUPPLIER.value: "sent_to_supplier_at",
    S.CONFIRMED.value: "confirmed_at",
    S.SHIPPED.value: "shipped_at",
    S.DELIVERED.value: "delivered_at",
    S.CANCELLED.value: "cancelled_at",
}


# ── Lookups ──────────────────────────────────────────────────

async def get_dropship_order(db: AsyncSession, dropship_order_id: str) -> DropshipOrder:
    order = await db.get(DropshipOrder, dropship_order_id)
    if not order:
        raise NotFoundError("Dropship order", dropship_order_id)
    return order


async def list_dropship_orders(
    db: AsyncSession,
    *,
    supplier_id: str | None = None,
    status: str | None = None,
    order_id: str | None = None,
    overdue: bool = False,
    today: date | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[DropshipOrder], int]:
    stmt = select(DropshipOrder)
    if supplier_id:
        stmt = stmt.where(DropshipOrder.supplier_id == supplier_id)
    if status:
        stmt = stmt.where(DropshipOrder.status == status)
    if order_id:
        stmt = stmt.where(DropshipOrder.order_id == order_id)
    if overdue:
        stmt = stmt.where(
            DropshipOrder.estimated_delivery < (today or utcnow().date()),
            DropshipOrder.status.notin_(TERMINAL_STATUSES),
        )

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    rows = await db.execute(
        stmt.order_by(DropshipOrder.created_at.desc()).limit(limit).offset(offset)
    )
    return list(rows.scalars().all()), total


# ── Predicates ───────────────────────────────────────────────

def can_retry(order: DropshipOrder) -> bool:
    return (
        bool(order.auto_retry_enabled)
        and order.retry_count < settings.dropship_max_retry_attempts
        and order.status in RETRY_ELIGIBLE
    )


# ── Transition core ──────────────────────────────────────────

async def _transition(
    db: AsyncSession,
    actor: Actor,
    order: DropshipOrder,
    new_status: str,
    *,
    now: datetime | None = None,
    details: dict | None = None,
) -> DropshipOrder:
    old_status = order.status
    allowed = ALLOWED_FROM.get(new_status)
    if allowed is not None and old_status not in allowed:
        raise InvalidStateError(
            f"Cannot move dropship order from {old_status} to {new_status}",
            {"dropship_order_id": order.id, "from": old_status, "to": new_status},
        )

    now = now or utcnow()
    order.status = new_status
    if new_status in _TIMESTAMP_FIELD:
        setattr(order, _TIMESTAMP_FIELD[new_status], now)
    for item in order.items:
        item.status = new_status
    await db.flush()

    await log_activity(
        db, actor,
        action="status_changed",
        entity_type="dropship_order",
        entity_id=order.id,
        summary=f"{old_status} → {new_status}",
        details={"from": old_status, "to": new_status, **(details or {})},
    )
    logger.info(
        "Dropship order status changed",
        extra={
            "dropship_order_id": order.id,
            "old_status": old_status,
            "new_status": new_status,
            "actor_id": actor.id,
        },
    )
    return order


def append_note(existing: str | None, line: str) -> str:
    return f"{existing}\n{line}" if existing else line


# ── Transitions ──────────────────────────────────────────────

async def send_to_supplier(
    db: AsyncSession, actor: Actor, order: DropshipOrder, *, now: datetime | None = None
) -> DropshipOrder:
    if order.status != S.PENDING.value:
        raise InvalidStateError(
            "Dropship order has already been sent to supplier",
            {"dropship_order_id": order.id, "status": order.status},
        )

    supplier = await db.get(Supplier, order.supplier_id)
    if supplier is None or not supplier.is_active():
        raise ValidationError(
            "Supplier is not active",
            {"dropship_order_id": order.id, "supplier_id": order.supplier_id},
        )

    integration = await get_active_integration(db, supplier.id)
    order.integration_type_used = (
        integration.integration_type if integration else supplier.integration_type
    )
    return await _transition(
        db, actor, order, S.SENT_TO_SUPPLIER.value, now=now,
        details={"integration_type": order.integration_type_used},
    )


async def mark_as_confirmed(
    db: AsyncSession,
    actor: Actor,
    order: DropshipOrder,
    supplier_order_id: str,
    supplier_response: dict | None = None,
    estimated_delivery: date | None = None,
    *,
    now: datetime | None = None,
) -> DropshipOrder:
    if not supplier_order_id:
        raise ValidationError("supplier_order_id is required", {"dropship_order_id": order.id})
    if order.status not in ALLOWED_FROM[S.CONFIRMED.value]:
        raise InvalidStateError(
            f"Cannot confirm a dropship order that is {order.status}",
            {"dropship_order_id": order.id, "status": order.status},
        )
    order.supplier_order_id = supplier_order_id
    order.supplier_response = supplier_response
    if estimated_delivery is not None:
        order.estimated_delivery = estimated_delivery
    return await _transition(
        db, actor, order, S.CONFIRMED.value, now=now,
        details={"supplier_order_id": supplier_order_id},
    )


async def mark_as_shipped(
    db: AsyncSession,
    actor: Actor,
    order: DropshipOrder,
    tracking_number: str,
    carrier: str | None = None,
    estimated_delivery: date | None = None,
    *,
    now: datetime | None = None,
) -> DropshipOrder:
    if not tracking_number:
        raise ValidationError("tracking_number is required", {"dropship_order_id": order.id})
    if order.status not in ALLOWED_FROM[S.SHIPPED.value]:
        raise InvalidStateError(
            f"Cannot ship a dropship order that is {order.status}",
            {"dropship_order_id": order.id, "status": order.status},
        )
    order.tracking_number = tracking_number
    if carrier is not None:
        order.carrier = carrier
    if estimated_delivery is not None:
        order.estimated_delivery = estimated_delivery
    return await _transition(
        db, actor, order, S.SHIPPED.value, now=now,
        details={"tracking_number": tracking_number, "carrier": carrier},
    )


async def mark_as_delivered(
    db: AsyncSession, actor: Actor, order: DropshipOrder, *, now: datetime | None = None
) -> DropshipOrder:
    return await _transition(db, actor, order, S.DELIVERED.value, now=now)


async def mark_as_cancelled(
    db: AsyncSession,
    actor: Actor,
    order: DropshipOrder,
    reason: str,
    *,
    now: datetime | None = None,
) -> DropshipOrder:
    if order.status == S.DELIVERED.value:
        raise InvalidStateError(
            "Cannot cancel a delivered dropship order",
            {"dropship_order_id": order.id},
        )
    order.cancellation_reason = reason
    order.notes = append_note(order.notes, f"Cancelled: {reason}")
    return await _transition(
        db, actor, order, S.CANCELLED.value, now=now, details={"reason": reason},
    )


async def retry(
    db: AsyncSession, actor: Actor, order: DropshipOrder, *, now: datetime | None = None
) -> DropshipOrder:
    if not can_retry(order):
        raise RetryNotAllowedError(
            "Dropship order cannot be retried",
            {
                "dropship_order_id": order.id,
                "status": order.status,
                "retry_count": order.retry_count,
                "max_retry_attempts": settings.dropship_max_retry_attempts,
                "auto_retry_enabled": bool(order.auto_retry_enabled),
            },
        )
    now = now or utcnow()
    order.retry_count += 1
    order.last_retry_at = now
    # pending is not in ALLOWED_FROM; can_retry already gates the move
    return await _transition(
        db, actor, order, S.PENDING.value, now=now,
        details={"retry_count": order.retry_count},
    )


async def update_status(
    db: AsyncSession,
    actor: Actor,
    order: DropshipOrder,
    new_status: str,
    context: StatusChangeRequest | None = None,
    *,
    now: datetime | None = None,
) -> DropshipOrder:
    """Move an order to `new_status` through the matching transition."""
    ctx = context or StatusChangeRequest(status=new_status)

    if new_status == S.SENT_TO_SUPPLIER.value:
        result = await send_to_supplier(db, actor, order, now=now)
    elif new_status == S.CONFIRMED.value:
        result = await mark_as_confirmed(
            db, actor, order,
            ctx.supplier_order_id or order.supplier_order_id,
            ctx.supplier_response,
            ctx.estimated_delivery,
            now=now,
        )
    elif new_status == S.SHIPPED.value:
        result = await mark_as_shipped(
            db, actor, order,
            ctx.tracking_number or order.tracking_number,
            ctx.carrier,
            ctx.estimated_delivery,
            now=now,
        )
    elif new_status == S.DELIVERED.value:
        result = await mark_as_delivered(db, actor, order, now=now)
    elif new_status == S.CANCELLED.value:
        reason = ctx.reason or ctx.notes or "Cancelled by administrator"
        return await mark_as_cancelled(db, actor, order, reason, now=now)
    elif new_status == S.PENDING.value:
        result = await retry(db, actor, order, now=now)
    else:
        raise ValidationError(f"Unknown dropship status: {new_status}")

    if ctx.notes:
        result.notes = append_note(result.notes, ctx.notes)
    return result


async def bulk_update_status(
    db: AsyncSession,
    actor: Actor,
    dropship_order_ids: list[str],
    new_status: str,
    context: StatusChangeRequest | None = None,
) -> dict:
    """Apply one transition to many orders; failures are tallied, not raised."""
    tally = {"success": 0, "failed": 0, "errors": []}
    now = utcnow()

    for order_id in dropship_order_ids:
        try:
            async with db.begin_nested():
                order = await get_dropship_order(db, order_id)
                await update_status(db, actor, order, new_status, context, now=now)
            tally["success"] += 1
        except (ValidationError, InvalidStateError, NotFoundError, RetryNotAllowedError) as e:
            tally["failed"] += 1
            tally["errors"].append(f"{order_id}: {e.message}")
        except Exception as e:
            logger.exception("Bulk status update failed for dropship order %s", order_id)
            tally["failed"] += 1
            tally["errors"].append(f"{order_id}: {e}")

    logger.info(
        "Bulk dropship status update",
        extra={
            "status": new_status,
            "success": tally["success"],
            "failed": tally["failed"],
            "actor_id": actor.id,
        },
    )
    return tally


# ── Create / edit / delete ───────────────────────────────────

async def create_dropship_order(
    db: AsyncSession, actor: Actor, body: DropshipOrderCreate
) -> DropshipOrder:
    order = await db.get(Order, body.order_id)
    if not order:
        raise NotFoundError("Order", body.order_id)

    supplier = await db.get(Supplier, body.supplier_id)
    if not supplier:
        raise NotFoundError("Supplier", body.supplier_id)
    if not supplier.is_active():
        raise ValidationError(
            "Supplier is not active", {"supplier_id": supplier.id, "status": supplier.status}
        )

    items = []
    total_cost = 0
    total_retail = 0
    for line in body.items:
        if line.quantity < 1:
            raise ValidationError("Item quantity must be at least 1")

        supplier_product = await db.get(SupplierProduct, line.supplier_product_id)
        if not supplier_product:
            raise NotFoundError("Supplier product", line.supplier_product_id)
        if supplier_product.supplier_id != supplier.id:
            raise ValidationError(
                f"Supplier product {supplier_product.supplier_sku} belongs to another supplier",
                {"supplier_product_id": supplier_product.id},
            )
        if not supplier_product.can_order(line.quantity):
            raise ValidationError(
                f"Supplier product {supplier_product.supplier_sku} cannot be ordered in quantity {line.quantity}",
                {
                    "supplier_product_id": supplier_product.id,
                    "quantity": line.quantity,
                    "stock_quantity": supplier_product.stock_quantity,
                    "minimum_order_quantity": supplier_product.minimum_order_quantity,
                    "is_active": bool(supplier_product.is_active),
                    "sync_status": supplier_product.sync_status,
                },
            )

        order_item = None
        if line.order_item_id:
            order_item = await db.get(OrderItem, line.order_item_id)
            if not order_item or order_item.order_id != order.id:
                raise ValidationError(
                    "Order item does not belong to this order",
                    {"order_item_id": line.order_item_id, "order_id": order.id},
                )

        supplier_price = (
            line.supplier_price if line.supplier_price is not None else supplier_product.supplier_price
        )
        if line.retail_price is not None:
            retail_price = line.retail_price
        elif supplier_product.retail_price is not None:
            retail_price = supplier_product.retail_price
        elif order_item is not None:
            retail_price = order_item.unit_price
        else:
            retail_price = supplier_price

        total_cost += supplier_price * line.quantity
        total_retail += retail_price * line.quantity
        items.append(DropshipOrderItem(
            order_item_id=line.order_item_id,
            supplier_product_id=supplier_product.id,
            supplier_sku=supplier_product.supplier_sku,
            quantity=line.quantity,
            supplier_price=supplier_price,
            retail_price=retail_price,
            profit_per_item=retail_price - supplier_price,
            status=S.PENDING.value,
            product_details=line.product_details or {"name": supplier_product.name},
        ))

    dropship_order = DropshipOrder(
        order_id=order.id,
        supplier_id=supplier.id,
        status=S.PENDING.value,
        total_cost=total_cost,
        total_retail=total_retail,
        profit_margin=total_retail - total_cost,
        shipping_address=body.shipping_address,
        notes=body.notes,
        estimated_delivery=body.estimated_delivery,
        auto_retry_enabled=body.auto_retry_enabled,
        retry_count=0,
        created_by=actor.id,
        items=items,
    )
    db.add(dropship_order)
    await db.flush()

    await log_activity(
        db, actor,
        action="created",
        entity_type="dropship_order",
        entity_id=dropship_order.id,
        summary=f"Routed {len(items)} item(s) of order {order.reference} to {supplier.name}",
        details={"order_id": order.id, "supplier_id": supplier.id, "total_cost": total_cost},
    )
    logger.info(
        "Dropship order created",
        extra={"dropship_order_id": dropship_order.id, "supplier_id": supplier.id, "actor_id": actor.id},
    )
    return dropship_order


async def update_dropship_order(
    db: AsyncSession, actor: Actor, order: DropshipOrder, body: DropshipOrderUpdate
) -> DropshipOrder:
    changes = body.model_dump(exclude_unset=True)
    if order.is_terminal and "shipping_address" in changes:
        raise InvalidStateError(
            f"Cannot change the shipping address of a {order.status} order",
            {"dropship_order_id": order.id},
        )
    for field, value in changes.items():
        setattr(order, field, value)
    await db.flush()

    await log_activity(
        db, actor,
        action="updated",
        entity_type="dropship_order",
        entity_id=order.id,
        details={"fields": sorted(changes)},
    )
    return order


async def delete_dropship_order(db: AsyncSession, actor: Actor, order: DropshipOrder) -> None:
    if order.status not in DELETABLE:
        raise ConflictError(
            "Cannot delete dropship order that has been sent to supplier",
            {"dropship_order_id": order.id, "status": order.status},
        )

    order_id = order.id
    item_count = len(order.items)
    # delete-orphan cascade removes the item rows before the order row
    await db.delete(order)
    await db.flush()

    await log_activity(
        db, actor,
        action="deleted",
        entity_type="dropship_order",
        entity_id=order_id,
        details={"items_deleted": item_count},
    )


# ── Stats ────────────────────────────────────────────────────

async def get_dropship_stats(db: AsyncSession, *, today: date | None = None) -> dict:
    today = today or utcnow().date()

    by_status_rows = (
        await db.execute(
            select(DropshipOrder.status, func.count(DropshipOrder.id)).group_by(DropshipOrder.status)
        )
    ).all()
    by_status = {s.value: 0 for s in S}
    by_status.update({row[0]: row[1] for row in by_status_rows})

    overdue = (
        await db.execute(
            select(func.count(DropshipOrder.id)).where(
                DropshipOrder.estimated_delivery < today,
                DropshipOrder.status.notin_(TERMINAL_STATUSES),
            )
        )
    ).scalar() or 0

    total_profit = (
        await db.execute(
            select(func.coalesce(func.sum(DropshipOrder.profit_margin), 0)).where(
                DropshipOrder.status != S.CANCELLED.value
            )
        )
    ).scalar() or 0

    supplier_rows = (
        await db.execute(
            select(
                DropshipOrder.supplier_id,
                Supplier.name,
                func.count(DropshipOrder.id),
                func.coalesce(func.sum(DropshipOrder.total_retail), 0),
            )
            .join(Supplier, Supplier.id == DropshipOrder.supplier_id)
            .group_by(DropshipOrder.supplier_id, Supplier.name)
            .order_by(func.count(DropshipOrder.id).desc())
        )
    ).all()

    return {
        "total_orders": sum(by_status.values()),
        "pending_orders": by_status[S.PENDING.value],
        "active_orders": sum(
            by_status[s] for s in (S.SENT_TO_SUPPLIER.value, S.CONFIRMED.value, S.SHIPPED.value)
        ),
        "completed_orders": by_status[S.DELIVERED.value],
        "cancelled_orders": by_status[S.CANCELLED.value],
        "overdue_orders": overdue,
        "total_profit": int(total_profit),
        "by_status": by_status,
        "by_supplier": [
            {
                "supplier_id": row[0],
                "supplier_name": row[1],
                "orders": row[2],
                "total_retail": int(row[3]),
            }
            for row in supplier_rows
        ],
    }
