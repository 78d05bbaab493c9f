"""Product ↔ supplier mapping service.

Keeps the primary-supplier invariant and pushes supplier price, stock and
description changes through a mapping onto the internal Product:

  - at most one primary mapping per product; `Product.primary_supplier_id`
    always mirrors it
  - make-primary and delete run under row locks on the product and its
    mappings so two concurrent calls cannot leave two primaries
  - deleting the primary promotes the next active mapping by
    `priority_order`; deactivating it does not

Price/stock writes are guarded by the mapping's auto-update switches and
silently skipped (returning False) when a switch is off.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.auth.deps import Actor
from dropship.middleware.exceptions import ConflictError, NotFoundError, ValidationError
from dropship.models.product import Product
from dropship.models.product_supplier_mapping import MarkupType, ProductSupplierMapping
from dropship.models.supplier_product import SupplierProduct
from dropship.schemas.mapping import BulkMappingSettings, MappingCreate, MappingUpdate
from dropship.services.pricing import mapping_selling_price
from dropship.utils.activity import log_activity
from dropship.utils.clock import utcnow

logger = logging.getLogger(__name__)

RECENT_PRICE_UPDATE = timedelta(days=7)
RECENT_STOCK_UPDATE = timedelta(days=1)


# ── Lookups ──────────────────────────────────────────────────

async def get_mapping(db: AsyncSession, mapping_id: str) -> ProductSupplierMapping:
    mapping = await db.get(ProductSupplierMapping, mapping_id)
    if not mapping:
        raise NotFoundError("Product supplier mapping", mapping_id)
    return mapping


async def list_mappings(
    db: AsyncSession,
    *,
    product_id: str | None = None,
    supplier_id: str | None = None,
    is_primary: bool | None = None,
    is_active: bool | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ProductSupplierMapping], int]:
    stmt = select(ProductSupplierMapping)
    if product_id:
        stmt = stmt.where(ProductSupplierMapping.product_id == product_id)
    if supplier_id:
        stmt = stmt.where(ProductSupplierMapping.supplier_id == supplier_id)
    if is_primary is not None:
        stmt = stmt.where(ProductSupplierMapping.is_primary == is_primary)
    if is_active is not None:
        stmt = stmt.where(ProductSupplierMapping.is_active == is_active)

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    rows = await db.execute(
        stmt.order_by(
            ProductSupplierMapping.product_id,
            ProductSupplierMapping.priority_order,
            ProductSupplierMapping.created_at,
        ).limit(limit).offset(offset)
    )
    return list(rows.scalars().all()), total


async def _get_product(db: AsyncSession, product_id: str, *, lock: bool = False) -> Product:
    stmt = select(Product).where(Product.id == product_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    product = (await db.execute(stmt)).scalar_one_or_none()
    if not product:
        raise NotFoundError("Product", product_id)
    return product


async def _locked_siblings(db: AsyncSession, product_id: str) -> list[ProductSupplierMapping]:
    """All mappings of a product, row-locked, best priority first."""
    result = await db.execute(
        select(ProductSupplierMapping)
        .where(ProductSupplierMapping.product_id == product_id)
        .order_by(ProductSupplierMapping.priority_order, ProductSupplierMapping.created_at)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def primary_mappings_for(
    db: AsyncSession, supplier_product_id: str
) -> list[ProductSupplierMapping]:
    """Active primary mappings that source their product from this catalog entry."""
    result = await db.execute(
        select(ProductSupplierMapping).where(
            ProductSupplierMapping.supplier_product_id == supplier_product_id,
            ProductSupplierMapping.is_primary == True,  # noqa: E712
            ProductSupplierMapping.is_active == True,  # noqa: E712
        )
    )
    return list(result.scalars().all())


# ── Guards ───────────────────────────────────────────────────

def can_update_price(mapping: ProductSupplierMapping, supplier_product: SupplierProduct | None) -> bool:
    return bool(
        mapping.auto_update_price
        and mapping.is_active
        and supplier_product is not None
        and supplier_product.is_active
    )


def can_update_stock(mapping: ProductSupplierMapping) -> bool:
    return bool(mapping.auto_update_stock and mapping.is_active)


def can_update_description(mapping: ProductSupplierMapping) -> bool:
    return bool(mapping.auto_update_description and mapping.is_active)


def available_stock(mapping: ProductSupplierMapping, supplier_stock: int) -> int:
    """Stock exposed on the storefront: supplier stock minus the safety threshold."""
    return max(0, supplier_stock - (mapping.minimum_stock_threshold or 0))


# ── Price / stock propagation ────────────────────────────────

async def update_pricing(
    db: AsyncSession,
    mapping: ProductSupplierMapping,
    new_supplier_price: int,
    *,
    now: datetime | None = None,
) -> bool:
    """Recompute the selling price and write it through to the product.

    Returns False (and changes nothing) when `can_update_price` fails.
    Applying the same price twice leaves the same result.
    """
    if new_supplier_price < 0:
        raise ValidationError("Supplier price cannot be negative", {"mapping_id": mapping.id})

    supplier_product = await db.get(SupplierProduct, mapping.supplier_product_id)
    if not can_update_price(mapping, supplier_product):
        return False

    retail = mapping_selling_price(mapping, new_supplier_price)
    supplier_product.supplier_price = new_supplier_price
    supplier_product.retail_price = retail

    product = await _get_product(db, mapping.product_id)
    product.price = retail
    product.supplier_cost = new_supplier_price
    mapping.last_price_update = now or utcnow()

    logger.info(
        "Mapping price updated",
        extra={"mapping_id": mapping.id, "supplier_price": new_supplier_price, "price": retail},
    )
    return True


async def update_stock(
    db: AsyncSession,
    mapping: ProductSupplierMapping,
    new_quantity: int,
    *,
    now: datetime | None = None,
) -> bool:
    """Record supplier stock and expose the thresholded quantity on the product."""
    if new_quantity < 0:
        raise ValidationError("Stock quantity cannot be negative", {"mapping_id": mapping.id})
    if not can_update_stock(mapping):
        return False

    supplier_product = await db.get(SupplierProduct, mapping.supplier_product_id)
    if supplier_product is not None:
        supplier_product.stock_quantity = new_quantity

    product = await _get_product(db, mapping.product_id)
    product.quantity = available_stock(mapping, new_quantity)
    mapping.last_stock_update = now or utcnow()
    return True


async def update_description(db: AsyncSession, mapping: ProductSupplierMapping) -> bool:
    if not can_update_description(mapping):
        return False
    supplier_product = await db.get(SupplierProduct, mapping.supplier_product_id)
    if supplier_product is None or supplier_product.description is None:
        return False
    product = await _get_product(db, mapping.product_id)
    product.description = supplier_product.description
    return True


async def sync_from_supplier_product(
    db: AsyncSession,
    mapping: ProductSupplierMapping,
    *,
    now: datetime | None = None,
) -> dict:
    """Pull the catalog entry's current price, stock and description."""
    supplier_product = await db.get(SupplierProduct, mapping.supplier_product_id)
    if supplier_product is None:
        raise NotFoundError("Supplier product", mapping.supplier_product_id)

    now = now or utcnow()
    return {
        "price_updated": await update_pricing(db, mapping, supplier_product.supplier_price, now=now),
        "stock_updated": await update_stock(db, mapping, supplier_product.stock_quantity, now=now),
        "description_updated": await update_description(db, mapping),
    }


# ── Primary selection ────────────────────────────────────────

async def make_primary(
    db: AsyncSession, actor: Actor | None, mapping: ProductSupplierMapping
) -> ProductSupplierMapping:
    if not mapping.is_active:
        raise ValidationError(
            "Inactive mappings cannot be made primary", {"mapping_id": mapping.id}
        )

    product = await _get_product(db, mapping.product_id, lock=True)
    for sibling in await _locked_siblings(db, mapping.product_id):
        if sibling.id != mapping.id:
            sibling.is_primary = False
    # Old primary must be cleared before the partial unique index sees the new one
    await db.flush()

    mapping.is_primary = True
    product.primary_supplier_id = mapping.supplier_id
    await db.flush()

    if actor is not None:
        await log_activity(
            db, actor,
            action="made_primary",
            entity_type="mapping",
            entity_id=mapping.id,
            summary=f"Supplier {mapping.supplier_id} is now primary for product {product.id}",
        )
    logger.info(
        "Primary supplier changed",
        extra={"product_id": product.id, "mapping_id": mapping.id, "supplier_id": mapping.supplier_id},
    )
    return mapping


async def activate(db: AsyncSession, actor: Actor, mapping: ProductSupplierMapping) -> ProductSupplierMapping:
    mapping.is_active = True
    await log_activity(
        db, actor, action="activated", entity_type="mapping", entity_id=mapping.id,
    )
    return mapping


async def deactivate(db: AsyncSession, actor: Actor, mapping: ProductSupplierMapping) -> ProductSupplierMapping:
    """Deactivate without reassigning primary (only delete promotes)."""
    mapping.is_active = False
    await log_activity(
        db, actor,
        action="deactivated",
        entity_type="mapping",
        entity_id=mapping.id,
        details={"was_primary": mapping.is_primary},
    )
    return mapping


# ── CRUD ─────────────────────────────────────────────────────

async def create_mapping(
    db: AsyncSession, actor: Actor, body: MappingCreate
) -> ProductSupplierMapping:
    product = await _get_product(db, body.product_id, lock=True)
    supplier_product = await db.get(SupplierProduct, body.supplier_product_id)
    if not supplier_product:
        raise NotFoundError("Supplier product", body.supplier_product_id)

    if supplier_product.product_id and supplier_product.product_id != product.id:
        raise ConflictError(
            "Supplier product is already mapped to another product",
            {"supplier_product_id": supplier_product.id, "product_id": supplier_product.product_id},
        )

    existing = (
        await db.execute(
            select(ProductSupplierMapping.id).where(
                ProductSupplierMapping.product_id == product.id,
                ProductSupplierMapping.supplier_product_id == supplier_product.id,
            )
        )
    ).scalar_one_or_none()
    if existing:
        raise ConflictError(
            "Mapping already exists", {"mapping_id": existing}
        )

    mapping = ProductSupplierMapping(
        product_id=product.id,
        supplier_id=supplier_product.supplier_id,
        supplier_product_id=supplier_product.id,
        is_primary=False,
        is_active=body.is_active,
        priority_order=body.priority_order,
        markup_type=body.markup_type,
        markup_percentage=body.markup_percentage,
        fixed_markup=body.fixed_markup,
        auto_update_price=body.auto_update_price,
        auto_update_stock=body.auto_update_stock,
        auto_update_description=body.auto_update_description,
        minimum_stock_threshold=body.minimum_stock_threshold,
    )
    db.add(mapping)

    supplier_product.product_id = product.id
    supplier_product.is_mapped = True
    product.is_dropship = True
    await db.flush()

    # First active mapping of a product becomes primary automatically
    if mapping.is_active and (body.is_primary or not product.primary_supplier_id):
        await make_primary(db, None, mapping)

    await log_activity(
        db, actor,
        action="created",
        entity_type="mapping",
        entity_id=mapping.id,
        summary=f"Mapped {supplier_product.supplier_sku} to product {product.name}",
        details={"is_primary": mapping.is_primary, "markup_type": mapping.markup_type},
    )
    return mapping


async def update_mapping(
    db: AsyncSession, actor: Actor, mapping: ProductSupplierMapping, body: MappingUpdate
) -> ProductSupplierMapping:
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(mapping, field, value)
    await db.flush()
    await log_activity(
        db, actor, action="updated", entity_type="mapping", entity_id=mapping.id,
        details={"fields": sorted(changes)},
    )
    return mapping


async def update_markup(
    db: AsyncSession,
    actor: Actor,
    mapping: ProductSupplierMapping,
    markup_type: str,
    markup_percentage=None,
    fixed_markup: int | None = None,
) -> ProductSupplierMapping:
    """Change the markup rule, then re-price from the current supplier cost."""
    mapping.markup_type = markup_type
    if markup_type == MarkupType.PERCENTAGE.value:
        if markup_percentage is None:
            raise ValidationError("markup_percentage is required for percentage markup")
        mapping.markup_percentage = markup_percentage
    else:
        if fixed_markup is None:
            raise ValidationError("fixed_markup is required for fixed markup")
        mapping.fixed_markup = fixed_markup

    supplier_product = await db.get(SupplierProduct, mapping.supplier_product_id)
    if supplier_product is not None:
        await update_pricing(db, mapping, supplier_product.supplier_price)

    await log_activity(
        db, actor,
        action="markup_changed",
        entity_type="mapping",
        entity_id=mapping.id,
        details={
            "markup_type": markup_type,
            "markup_percentage": str(mapping.markup_percentage),
            "fixed_markup": mapping.fixed_markup,
        },
    )
    return mapping


async def delete_mapping(
    db: AsyncSession, actor: Actor | None, mapping: ProductSupplierMapping
) -> ProductSupplierMapping | None:
    """Delete a mapping, promoting a replacement primary if needed.

    Returns the newly promoted mapping, if any.
    """
    product = await _get_product(db, mapping.product_id, lock=True)
    siblings = await _locked_siblings(db, mapping.product_id)
    was_primary = mapping.is_primary
    supplier_product_id = mapping.supplier_product_id

    await db.delete(mapping)
    await db.flush()

    promoted = None
    remaining = [m for m in siblings if m.id != mapping.id]
    if was_primary:
        promoted = next((m for m in remaining if m.is_active), None)
        if promoted:
            promoted.is_primary = True
            product.primary_supplier_id = promoted.supplier_id
        else:
            product.primary_supplier_id = None
    if not remaining:
        product.is_dropship = False

    left_for_sp = (
        await db.execute(
            select(func.count(ProductSupplierMapping.id)).where(
                ProductSupplierMapping.supplier_product_id == supplier_product_id
            )
        )
    ).scalar() or 0
    if left_for_sp == 0:
        supplier_product = await db.get(SupplierProduct, supplier_product_id)
        if supplier_product is not None:
            supplier_product.is_mapped = False
            supplier_product.product_id = None
    await db.flush()

    if actor is not None:
        await log_activity(
            db, actor,
            action="deleted",
            entity_type="mapping",
            entity_id=mapping.id,
            details={
                "was_primary": was_primary,
                "promoted_mapping_id": promoted.id if promoted else None,
            },
        )
    logger.info(
        "Mapping deleted",
        extra={
            "mapping_id": mapping.id,
            "product_id": product.id,
            "promoted": promoted.id if promoted else None,
        },
    )
    return promoted


# ── Bulk ─────────────────────────────────────────────────────

async def _mappings_by_ids(db: AsyncSession, ids: list[str]) -> list[ProductSupplierMapping]:
    result = await db.execute(
        select(ProductSupplierMapping).where(ProductSupplierMapping.id.in_(ids))
    )
    return list(result.scalars().all())


async def bulk_sync_prices(db: AsyncSession, actor: Actor, mapping_ids: list[str]) -> dict:
    """Re-price every listed mapping from its catalog entry.

    Best effort: a failing mapping is logged and skipped.
    """
    updated = 0
    now = utcnow()
    for mapping in await _mappings_by_ids(db, mapping_ids):
        mapping_id = mapping.id
        supplier_product = await db.get(SupplierProduct, mapping.supplier_product_id)
        if supplier_product is None:
            continue
        try:
            async with db.begin_nested():
                if await update_pricing(db, mapping, supplier_product.supplier_price, now=now):
                    updated += 1
        except Exception:
            logger.exception("Price sync failed for mapping %s", mapping_id)

    await log_activity(
        db, actor,
        action="bulk_price_sync",
        entity_type="mapping",
        summary=f"Synced prices for {updated} of {len(mapping_ids)} mappings",
    )
    return {"updated_count": updated, "total_requested": len(mapping_ids)}


async def bulk_update_settings(
    db: AsyncSession, actor: Actor, body: BulkMappingSettings
) -> dict:
    changes = body.model_dump(exclude_unset=True, exclude={"mapping_ids"})
    mappings = await _mappings_by_ids(db, body.mapping_ids)
    for mapping in mappings:
        for field, value in changes.items():
            setattr(mapping, field, value)
    await db.flush()

    await log_activity(
        db, actor,
        action="bulk_updated",
        entity_type="mapping",
        summary=f"Updated settings on {len(mappings)} mappings",
        details={"fields": sorted(changes)},
    )
    return {"updated_count": len(mappings), "total_requested": len(body.mapping_ids)}


# ── Health ───────────────────────────────────────────────────

async def get_mapping_health_report(
    db: AsyncSession, mapping: ProductSupplierMapping, *, now: datetime | None = None
) -> dict:
    now = now or utcnow()
    supplier_product = await db.get(SupplierProduct, mapping.supplier_product_id)

    report = {
        "mapping_id": mapping.id,
        "is_active": bool(mapping.is_active),
        "is_primary": bool(mapping.is_primary),
        "supplier_product_exists": supplier_product is not None,
        "supplier_product_active": bool(supplier_product and supplier_product.is_active),
        "stock_available": bool(supplier_product and supplier_product.stock_quantity > 0),
        "recent_price_update": bool(
            mapping.last_price_update and now - mapping.last_price_update <= RECENT_PRICE_UPDATE
        ),
        "recent_stock_update": bool(
            mapping.last_stock_update and now - mapping.last_stock_update <= RECENT_STOCK_UPDATE
        ),
    }
    report["healthy"] = (
        report["is_active"]
        and report["supplier_product_active"]
        and report["stock_available"]
    )
    return report
