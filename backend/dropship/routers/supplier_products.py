"""Supplier catalog administration.

Endpoints:
    GET    /api/supplier-products               List (supplier, sync status, mapped, search)
    POST   /api/supplier-products               Add a catalog entry
    POST   /api/supplier-products/bulk-stock    Set stock on many entries
    POST   /api/supplier-products/bulk-prices   Set prices on many entries
    POST   /api/supplier-products/bulk-status   Mark many entries with a sync status
    GET    /api/supplier-products/{id}          Detail
    PATCH  /api/supplier-products/{id}          Edit (price/stock propagate)
    DELETE /api/supplier-products/{id}          Delete (no open dropship orders)
    POST   /api/supplier-products/{id}/map      Map onto a product as primary source
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.auth.deps import Actor, require_permission
from dropship.database import get_db
from dropship.schemas.common import BulkUpdateResult, PaginatedResponse
from dropship.schemas.mapping import MappingOut
from dropship.schemas.supplier_product import (
    BulkPriceRequest,
    BulkStockRequest,
    BulkSyncStatusRequest,
    MapToProductRequest,
    SupplierProductCreate,
    SupplierProductOut,
    SupplierProductUpdate,
)
from dropship.services import supplier_products as service

router = APIRouter()


# ── Collection ───────────────────────────────────────────────

@router.get("", response_model=PaginatedResponse[SupplierProductOut])
async def list_supplier_products(
    supplier_id: str | None = Query(None),
    sync_status: str | None = Query(None),
    is_mapped: bool | None = Query(None),
    search: str | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("supplier_product.read")),
):
    items, total = await service.list_supplier_products(
        db,
        supplier_id=supplier_id,
        sync_status=sync_status,
        is_mapped=is_mapped,
        search=search,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse[SupplierProductOut](
        items=[SupplierProductOut.model_validate(sp) for sp in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=SupplierProductOut, status_code=status.HTTP_201_CREATED)
async def create_supplier_product(
    body: SupplierProductCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier_product.write")),
):
    return SupplierProductOut.model_validate(await service.create_supplier_product(db, actor, body))


@router.post("/bulk-stock", response_model=BulkUpdateResult)
async def bulk_update_stock(
    body: BulkStockRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier_product.bulk")),
):
    return await service.bulk_update_stock(db, actor, body.items)


@router.post("/bulk-prices", response_model=BulkUpdateResult)
async def bulk_update_prices(
    body: BulkPriceRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier_product.bulk")),
):
    return await service.bulk_update_prices(db, actor, body.items)


@router.post("/bulk-status", response_model=BulkUpdateResult)
async def bulk_mark_sync_status(
    body: BulkSyncStatusRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier_product.bulk")),
):
    return await service.bulk_mark_sync_status(
        db, actor, body.supplier_product_ids, body.sync_status
    )


# ── Single entry ─────────────────────────────────────────────

@router.get("/{supplier_product_id}", response_model=SupplierProductOut)
async def get_supplier_product(
    supplier_product_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("supplier_product.read")),
):
    return SupplierProductOut.model_validate(
        await service.get_supplier_product(db, supplier_product_id)
    )


@router.patch("/{supplier_product_id}", response_model=SupplierProductOut)
async def update_supplier_product(
    supplier_product_id: str,
    body: SupplierProductUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier_product.write")),
):
    supplier_product = await service.get_supplier_product(db, supplier_product_id)
    supplier_product = await service.update_supplier_product(db, actor, supplier_product, body)
    return SupplierProductOut.model_validate(supplier_product)


@router.delete("/{supplier_product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_supplier_product(
    supplier_product_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier_product.delete")),
):
    supplier_product = await service.get_supplier_product(db, supplier_product_id)
    await service.delete_supplier_product(db, actor, supplier_product)


@router.post("/{supplier_product_id}/map", response_model=MappingOut, status_code=status.HTTP_201_CREATED)
async def map_to_product(
    supplier_product_id: str,
    body: MapToProductRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier_product.map")),
):
    """Map onto an existing product, or create one when create_new_product is set."""
    supplier_product = await service.get_supplier_product(db, supplier_product_id)
    mapping = await service.map_to_product(db, actor, supplier_product, body)
    return MappingOut.model_validate(mapping)
