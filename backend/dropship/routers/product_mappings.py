"""Product ↔ supplier mapping administration.

Endpoints:
    GET    /api/product-mappings                        List (product, supplier, primary, active)
    POST   /api/product-mappings                        Create
    POST   /api/product-mappings/bulk-settings          Apply settings to many mappings
    POST   /api/product-mappings/bulk-sync-prices       Re-price many mappings
    GET    /api/product-mappings/{id}                   Detail
    PATCH  /api/product-mappings/{id}                   Edit sync settings
    DELETE /api/product-mappings/{id}                   Delete (promotes next primary)
    POST   /api/product-mappings/{id}/make-primary      Make this the primary supplier
    POST   /api/product-mappings/{id}/activate          Activate
    POST   /api/product-mappings/{id}/deactivate        Deactivate (no promotion)
    PUT    /api/product-mappings/{id}/markup            Change markup and re-price
    POST   /api/product-mappings/{id}/sync              Pull price/stock/description now
    GET    /api/product-mappings/{id}/health-report     Mapping health checks
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.auth.deps import Actor, require_permission
from dropship.database import get_db
from dropship.schemas.common import BulkUpdateResult, PaginatedResponse
from dropship.schemas.mapping import (
    BulkMappingIds,
    BulkMappingSettings,
    MappingCreate,
    MappingHealth,
    MappingOut,
    MappingUpdate,
    MarkupUpdate,
)
from dropship.services import mappings as service

router = APIRouter()


# ── Collection ───────────────────────────────────────────────

@router.get("", response_model=PaginatedResponse[MappingOut])
async def list_mappings(
    product_id: str | None = Query(None),
    supplier_id: str | None = Query(None),
    is_primary: bool | None = Query(None),
    is_active: bool | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("mapping.read")),
):
    items, total = await service.list_mappings(
        db,
        product_id=product_id,
        supplier_id=supplier_id,
        is_primary=is_primary,
        is_active=is_active,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse[MappingOut](
        items=[MappingOut.model_validate(m) for m in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=MappingOut, status_code=status.HTTP_201_CREATED)
async def create_mapping(
    body: MappingCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("mapping.manage")),
):
    return MappingOut.model_validate(await service.create_mapping(db, actor, body))


@router.post("/bulk-settings", response_model=BulkUpdateResult)
async def bulk_update_settings(
    body: BulkMappingSettings,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("mapping.manage")),
):
    return await service.bulk_update_settings(db, actor, body)


@router.post("/bulk-sync-prices", response_model=BulkUpdateResult)
async def bulk_sync_prices(
    body: BulkMappingIds,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("mapping.manage")),
):
    return await service.bulk_sync_prices(db, actor, body.mapping_ids)


# ── Single mapping ───────────────────────────────────────────

@router.get("/{mapping_id}", response_model=MappingOut)
async def get_mapping(
    mapping_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("mapping.read")),
):
    return MappingOut.model_validate(await service.get_mapping(db, mapping_id))


@router.patch("/{mapping_id}", response_model=MappingOut)
async def update_mapping(
    mapping_id: str,
    body: MappingUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("mapping.manage")),
):
    mapping = await service.get_mapping(db, mapping_id)
    return MappingOut.model_validate(await service.update_mapping(db, actor, mapping, body))


@router.delete("/{mapping_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_mapping(
    mapping_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("mapping.manage")),
):
    mapping = await service.get_mapping(db, mapping_id)
    await service.delete_mapping(db, actor, mapping)


@router.post("/{mapping_id}/make-primary", response_model=MappingOut)
async def make_primary(
    mapping_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("mapping.manage")),
):
    mapping = await service.get_mapping(db, mapping_id)
    return MappingOut.model_validate(await service.make_primary(db, actor, mapping))


@router.post("/{mapping_id}/activate", response_model=MappingOut)
async def activate_mapping(
    mapping_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("mapping.manage")),
):
    mapping = await service.get_mapping(db, mapping_id)
    return MappingOut.model_validate(await service.activate(db, actor, mapping))


@router.post("/{mapping_id}/deactivate", response_model=MappingOut)
async def deactivate_mapping(
    mapping_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("mapping.manage")),
):
    mapping = await service.get_mapping(db, mapping_id)
    return MappingOut.model_validate(await service.deactivate(db, actor, mapping))


@router.put("/{mapping_id}/markup", response_model=MappingOut)
async def update_markup(
    mapping_id: str,
    body: MarkupUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("mapping.manage")),
):
    mapping = await service.get_mapping(db, mapping_id)
    mapping = await service.update_markup(
        db, actor, mapping, body.markup_type, body.markup_percentage, body.fixed_markup,
    )
    return MappingOut.model_validate(mapping)


@router.post("/{mapping_id}/sync")
async def sync_mapping(
    mapping_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("mapping.manage")),
):
    """Returns which of price, stock and description were written."""
    mapping = await service.get_mapping(db, mapping_id)
    return await service.sync_from_supplier_product(db, mapping)


@router.get("/{mapping_id}/health-report", response_model=MappingHealth)
async def mapping_health(
    mapping_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("mapping.read")),
):
    mapping = await service.get_mapping(db, mapping_id)
    return await service.get_mapping_health_report(db, mapping)
