"""Supplier service — CRUD, activation and per-supplier statistics."""

import logging

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.auth.deps import Actor
from dropship.middleware.exceptions import ConflictError, NotFoundError, ValidationError
from dropship.models.dropship_order import DropshipOrder, DropshipStatus
from dropship.models.supplier import Supplier, SupplierStatus
from dropship.models.supplier_integration import SupplierIntegration
from dropship.models.supplier_product import SupplierProduct, SyncStatus
from dropship.schemas.supplier import SupplierCreate, SupplierUpdate
from dropship.services.integrations import get_active_integration, run_connection_test
from dropship.services.supplier_client import ConnectionTestResult, SupplierAPIClient
from dropship.utils.activity import log_activity
from dropship.utils.locks import get_supplier_delete_lock

logger = logging.getLogger(__name__)


async def get_supplier(db: AsyncSession, supplier_id: str) -> Supplier:
    supplier = await db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError("Supplier", supplier_id)
    return supplier


async def list_suppliers(
    db: AsyncSession,
    *,
    status: str | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Supplier], int]:
    stmt = select(Supplier)
    if status:
        stmt = stmt.where(Supplier.status == status)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(Supplier.name.ilike(pattern) | Supplier.company_name.ilike(pattern))

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    rows = await db.execute(stmt.order_by(Supplier.name).limit(limit).offset(offset))
    return list(rows.scalars().all()), total


async def create_supplier(db: AsyncSession, actor: Actor, body: SupplierCreate) -> Supplier:
    supplier = Supplier(**body.model_dump())
    db.add(supplier)
    await db.flush()
    await log_activity(
        db, actor,
        action="created",
        entity_type="supplier",
        entity_id=supplier.id,
        summary=f"Created supplier {supplier.name}",
    )
    return supplier


async def update_supplier(
    db: AsyncSession, actor: Actor, supplier: Supplier, body: SupplierUpdate
) -> Supplier:
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(supplier, field, value)
    await db.flush()
    await log_activity(
        db, actor,
        action="updated",
        entity_type="supplier",
        entity_id=supplier.id,
        details={"fields": sorted(changes)},
    )
    return supplier


async def _set_status(db: AsyncSession, actor: Actor, supplier: Supplier, status: str) -> Supplier:
    old = supplier.status
    supplier.status = status
    await db.flush()
    await log_activity(
        db, actor,
        action="status_changed",
        entity_type="supplier",
        entity_id=supplier.id,
        summary=f"{old} → {status}",
        details={"from": old, "to": status},
    )
    return supplier


async def activate_supplier(db: AsyncSession, actor: Actor, supplier: Supplier) -> Supplier:
    return await _set_status(db, actor, supplier, SupplierStatus.ACTIVE.value)


async def deactivate_supplier(db: AsyncSession, actor: Actor, supplier: Supplier) -> Supplier:
    return await _set_status(db, actor, supplier, SupplierStatus.INACTIVE.value)


async def delete_supplier(db: AsyncSession, actor: Actor, supplier: Supplier) -> None:
    lock = await get_supplier_delete_lock(db, supplier.id)
    if lock.is_locked:
        raise ConflictError(
            f"{lock.reason}. {lock.unlock_hint}",
            {"supplier_id": supplier.id, "dropship_order_ids": lock.blocker_ids()},
        )
    product_count = (
        await db.execute(
            select(func.count(SupplierProduct.id)).where(SupplierProduct.supplier_id == supplier.id)
        )
    ).scalar() or 0
    if product_count:
        raise ConflictError(
            "Supplier still has catalog entries. Remove them first.",
            {"supplier_id": supplier.id, "supplier_products": product_count},
        )
    order_count = (
        await db.execute(
            select(func.count(DropshipOrder.id)).where(DropshipOrder.supplier_id == supplier.id)
        )
    ).scalar() or 0
    if order_count:
        raise ConflictError(
            "Supplier has dropship order history. Deactivate it instead.",
            {"supplier_id": supplier.id, "dropship_orders": order_count},
        )

    integrations = (
        await db.execute(
            select(SupplierIntegration).where(SupplierIntegration.supplier_id == supplier.id)
        )
    ).scalars().all()
    for integration in integrations:
        await db.delete(integration)

    supplier_id = supplier.id
    name = supplier.name
    await db.delete(supplier)
    await db.flush()
    await log_activity(
        db, actor,
        action="deleted",
        entity_type="supplier",
        entity_id=supplier_id,
        summary=f"Deleted supplier {name}",
    )


async def get_supplier_stats(db: AsyncSession, supplier: Supplier) -> dict:
    product_row = (
        await db.execute(
            select(
                func.count(SupplierProduct.id),
                func.sum(case((SupplierProduct.is_active == True, 1), else_=0)),  # noqa: E712
                func.sum(case((SupplierProduct.is_mapped == True, 1), else_=0)),  # noqa: E712
                func.sum(case((SupplierProduct.sync_status == SyncStatus.SYNCED.value, 1), else_=0)),
                func.sum(case((SupplierProduct.stock_quantity <= 0, 1), else_=0)),
            ).where(SupplierProduct.supplier_id == supplier.id)
        )
    ).one()
    total, active, mapped, synced, out_of_stock = (int(v or 0) for v in product_row)

    order_row = (
        await db.execute(
            select(
                func.count(DropshipOrder.id),
                func.sum(case((DropshipOrder.status == DropshipStatus.PENDING.value, 1), else_=0)),
                func.sum(case((DropshipOrder.status == DropshipStatus.DELIVERED.value, 1), else_=0)),
                func.sum(case((DropshipOrder.status == DropshipStatus.CANCELLED.value, 1), else_=0)),
            ).where(DropshipOrder.supplier_id == supplier.id)
        )
    ).one()
    orders, pending, delivered, cancelled = (int(v or 0) for v in order_row)

    finished = delivered + cancelled
    integration = await get_active_integration(db, supplier.id)
    return {
        "supplier_id": supplier.id,
        "total_products": total,
        "active_products": active,
        "mapped_products": mapped,
        "synced_products": synced,
        "out_of_stock_products": out_of_stock,
        "sync_rate": round(synced / total * 100, 2) if total else 0.0,
        "total_dropship_orders": orders,
        "pending_dropship_orders": pending,
        "delivered_dropship_orders": delivered,
        "fulfilment_success_rate": round(delivered / finished * 100, 2) if finished else 0.0,
        "active_integration_id": integration.id if integration else None,
    }


async def test_supplier_connection(
    db: AsyncSession, actor: Actor, supplier: Supplier, client: SupplierAPIClient
) -> ConnectionTestResult:
    integration = await get_active_integration(db, supplier.id)
    if integration is None:
        raise ValidationError(
            "No active integration found for this supplier", {"supplier_id": supplier.id}
        )
    return await run_connection_test(db, actor, integration, client)
