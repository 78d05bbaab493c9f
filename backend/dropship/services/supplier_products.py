"""Supplier catalog service.

Price and stock changes on a catalog entry propagate to the internal
product through its active primary mapping, subject to that mapping's
auto-update switches.  Bulk operations are best effort: each line runs in
its own savepoint and failures are skipped, so the response only reports
how many lines were applied.
"""

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.auth.deps import Actor
from dropship.middleware.exceptions import ConflictError, NotFoundError, ValidationError
from dropship.models.product import Product
from dropship.models.product_supplier_mapping import ProductSupplierMapping
from dropship.models.supplier import Supplier
from dropship.models.supplier_product import SupplierProduct, SyncStatus
from dropship.schemas.mapping import MappingCreate
from dropship.schemas.supplier_product import (
    MapToProductRequest,
    PriceLine,
    StockLine,
    SupplierProductCreate,
    SupplierProductUpdate,
)
from dropship.services import mappings as mapping_service
from dropship.services.pricing import mapping_selling_price
from dropship.utils.activity import log_activity
from dropship.utils.clock import utcnow
from dropship.utils.locks import get_supplier_product_delete_lock

logger = logging.getLogger(__name__)


# ── Lookups ──────────────────────────────────────────────────

async def get_supplier_product(db: AsyncSession, supplier_product_id: str) -> SupplierProduct:
    supplier_product = await db.get(SupplierProduct, supplier_product_id)
    if not supplier_product:
        raise NotFoundError("Supplier product", supplier_product_id)
    return supplier_product


async def list_supplier_products(
    db: AsyncSession,
    *,
    supplier_id: str | None = None,
    sync_status: str | None = None,
    is_mapped: bool | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[SupplierProduct], int]:
    stmt = select(SupplierProduct)
    if supplier_id:
        stmt = stmt.where(SupplierProduct.supplier_id == supplier_id)
    if sync_status:
        stmt = stmt.where(SupplierProduct.sync_status == sync_status)
    if is_mapped is not None:
        stmt = stmt.where(SupplierProduct.is_mapped == is_mapped)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            SupplierProduct.name.ilike(pattern) | SupplierProduct.supplier_sku.ilike(pattern)
        )

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    rows = await db.execute(
        stmt.order_by(SupplierProduct.created_at.desc()).limit(limit).offset(offset)
    )
    return list(rows.scalars().all()), total


# ── Propagation ──────────────────────────────────────────────

async def set_stock(
    db: AsyncSession,
    supplier_product: SupplierProduct,
    quantity: int,
    *,
    now: datetime | None = None,
) -> SupplierProduct:
    """Record supplier stock and push it through the primary mapping."""
    if quantity < 0:
        raise ValidationError(
            "Stock quantity cannot be negative", {"supplier_product_id": supplier_product.id}
        )
    supplier_product.stock_quantity = quantity
    for mapping in await mapping_service.primary_mappings_for(db, supplier_product.id):
        await mapping_service.update_stock(db, mapping, quantity, now=now)
    return supplier_product


async def update_price(
    db: AsyncSession,
    supplier_product: SupplierProduct,
    supplier_price: int,
    retail_price: int | None = None,
    *,
    now: datetime | None = None,
) -> SupplierProduct:
    """Set the supplier cost; derive retail from the markup unless overridden."""
    if supplier_price < 0:
        raise ValidationError(
            "Supplier price cannot be negative", {"supplier_product_id": supplier_product.id}
        )
    now = now or utcnow()
    supplier_product.supplier_price = supplier_price

    primaries = await mapping_service.primary_mappings_for(db, supplier_product.id)
    if retail_price is not None:
        supplier_product.retail_price = retail_price
    elif primaries:
        supplier_product.retail_price = mapping_selling_price(primaries[0], supplier_price)

    for mapping in primaries:
        if not mapping_service.can_update_price(mapping, supplier_product):
            continue
        product = await db.get(Product, mapping.product_id)
        if product is None:
            continue
        product.price = supplier_product.retail_price
        product.supplier_cost = supplier_price
        mapping.last_price_update = now
    return supplier_product


# ── CRUD ─────────────────────────────────────────────────────

async def create_supplier_product(
    db: AsyncSession, actor: Actor, body: SupplierProductCreate
) -> SupplierProduct:
    supplier = await db.get(Supplier, body.supplier_id)
    if not supplier:
        raise NotFoundError("Supplier", body.supplier_id)

    duplicate = (
        await db.execute(
            select(SupplierProduct.id).where(
                SupplierProduct.supplier_id == supplier.id,
                SupplierProduct.supplier_sku == body.supplier_sku,
            )
        )
    ).scalar_one_or_none()
    if duplicate:
        raise ConflictError(
            f"SKU {body.supplier_sku} already exists for this supplier",
            {"supplier_product_id": duplicate},
        )

    supplier_product = SupplierProduct(**body.model_dump())
    db.add(supplier_product)
    await db.flush()

    await log_activity(
        db, actor,
        action="created",
        entity_type="supplier_product",
        entity_id=supplier_product.id,
        summary=f"Added {supplier_product.supplier_sku} to {supplier.name} catalog",
    )
    return supplier_product


async def update_supplier_product(
    db: AsyncSession,
    actor: Actor,
    supplier_product: SupplierProduct,
    body: SupplierProductUpdate,
) -> SupplierProduct:
    changes = body.model_dump(exclude_unset=True)
    supplier_price = changes.pop("supplier_price", None)
    retail_price = changes.pop("retail_price", None)
    stock = changes.pop("stock_quantity", None)

    for field, value in changes.items():
        setattr(supplier_product, field, value)

    if supplier_price is not None:
        await update_price(db, supplier_product, supplier_price, retail_price)
    elif retail_price is not None:
        supplier_product.retail_price = retail_price
    if stock is not None:
        await set_stock(db, supplier_product, stock)
    await db.flush()

    await log_activity(
        db, actor,
        action="updated",
        entity_type="supplier_product",
        entity_id=supplier_product.id,
        details={"fields": sorted(body.model_dump(exclude_unset=True))},
    )
    return supplier_product


async def delete_supplier_product(
    db: AsyncSession, actor: Actor, supplier_product: SupplierProduct
) -> None:
    """Delete a catalog entry once no open dropship order references it."""
    lock = await get_supplier_product_delete_lock(db, supplier_product.id)
    if lock.is_locked:
        raise ConflictError(
            f"{lock.reason}. {lock.unlock_hint}",
            {"supplier_product_id": supplier_product.id, "dropship_order_ids": lock.blocker_ids()},
        )

    mapped = (
        await db.execute(
            select(ProductSupplierMapping).where(
                ProductSupplierMapping.supplier_product_id == supplier_product.id
            )
        )
    ).scalars().all()
    for mapping in mapped:
        await mapping_service.delete_mapping(db, actor, mapping)

    supplier_product_id = supplier_product.id
    sku = supplier_product.supplier_sku
    await db.delete(supplier_product)
    await db.flush()

    await log_activity(
        db, actor,
        action="deleted",
        entity_type="supplier_product",
        entity_id=supplier_product_id,
        summary=f"Removed {sku} from catalog",
    )


# ── Mapping onto internal products ───────────────────────────

async def create_mapped_product(db: AsyncSession, supplier_product: SupplierProduct) -> Product:
    """Create an internal product from a catalog entry and mark it mapped.

    The caller creates the mapping row in the same transaction.
    """
    product = Product(
        name=supplier_product.name,
        description=supplier_product.description,
        price=supplier_product.retail_price or supplier_product.supplier_price,
        supplier_cost=supplier_product.supplier_price,
        quantity=supplier_product.stock_quantity,
        is_dropship=True,
        primary_supplier_id=None,
    )
    db.add(product)
    await db.flush()

    supplier_product.product_id = product.id
    supplier_product.is_mapped = True
    return product


async def map_to_product(
    db: AsyncSession,
    actor: Actor,
    supplier_product: SupplierProduct,
    body: MapToProductRequest,
) -> ProductSupplierMapping:
    """Map a catalog entry onto a product (new or existing) as its primary source."""
    if body.create_new_product:
        if supplier_product.is_mapped:
            raise ConflictError(
                "Supplier product is already mapped",
                {"supplier_product_id": supplier_product.id, "product_id": supplier_product.product_id},
            )
        product = await create_mapped_product(db, supplier_product)
        product_id = product.id
    else:
        product_id = body.product_id

    mapping = await mapping_service.create_mapping(
        db, actor,
        MappingCreate(
            product_id=product_id,
            supplier_product_id=supplier_product.id,
            is_primary=True,
            is_active=True,
            priority_order=body.priority_order,
            markup_type=body.markup_type,
            markup_percentage=body.markup_percentage,
            fixed_markup=body.fixed_markup,
        ),
    )
    await mapping_service.update_pricing(db, mapping, supplier_product.supplier_price)
    await mapping_service.update_stock(db, mapping, supplier_product.stock_quantity)
    await db.flush()

    logger.info(
        "Supplier product mapped",
        extra={
            "supplier_product_id": supplier_product.id,
            "product_id": product_id,
            "new_product": body.create_new_product,
        },
    )
    return mapping


# ── Bulk ─────────────────────────────────────────────────────

async def bulk_update_stock(db: AsyncSession, actor: Actor, lines: list[StockLine]) -> dict:
    updated = 0
    now = utcnow()
    for line in lines:
        supplier_product = await db.get(SupplierProduct, line.id)
        if supplier_product is None:
            continue
        try:
            async with db.begin_nested():
                await set_stock(db, supplier_product, line.stock_quantity, now=now)
            updated += 1
        except Exception:
            logger.exception("Bulk stock update failed for supplier product %s", line.id)

    await log_activity(
        db, actor,
        action="bulk_stock_update",
        entity_type="supplier_product",
        summary=f"Updated stock on {updated} of {len(lines)} supplier products",
    )
    return {"updated_count": updated, "total_requested": len(lines)}


async def bulk_update_prices(db: AsyncSession, actor: Actor, lines: list[PriceLine]) -> dict:
    updated = 0
    now = utcnow()
    for line in lines:
        supplier_product = await db.get(SupplierProduct, line.id)
        if supplier_product is None:
            continue
        try:
            async with db.begin_nested():
                await update_price(
                    db, supplier_product, line.supplier_price, line.retail_price, now=now
                )
            updated += 1
        except Exception:
            logger.exception("Bulk price update failed for supplier product %s", line.id)

    await log_activity(
        db, actor,
        action="bulk_price_update",
        entity_type="supplier_product",
        summary=f"Updated prices on {updated} of {len(lines)} supplier products",
    )
    return {"updated_count": updated, "total_requested": len(lines)}


async def bulk_mark_sync_status(
    db: AsyncSession, actor: Actor, ids: list[str], sync_status: str
) -> dict:
    rows = (
        await db.execute(select(SupplierProduct).where(SupplierProduct.id.in_(ids)))
    ).scalars().all()
    for supplier_product in rows:
        supplier_product.sync_status = sync_status
        if sync_status == SyncStatus.SYNCED.value:
            supplier_product.sync_errors = None
    await db.flush()

    await log_activity(
        db, actor,
        action="bulk_status_update",
        entity_type="supplier_product",
        summary=f"Marked {len(rows)} supplier products {sync_status}",
    )
    return {"updated_count": len(rows), "total_requested": len(ids)}
