"""Supplier administration.

Endpoints:
    GET    /api/suppliers                        List
    POST   /api/suppliers                        Create
    GET    /api/suppliers/{id}                   Detail
    PATCH  /api/suppliers/{id}                   Edit
    DELETE /api/suppliers/{id}                   Delete (no open orders, no catalog)
    POST   /api/suppliers/{id}/activate          status → active
    POST   /api/suppliers/{id}/deactivate        status → inactive
    GET    /api/suppliers/{id}/stats             Catalog and fulfilment stats
    POST   /api/suppliers/{id}/test-connection   Test the active integration
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.auth.deps import Actor, require_permission
from dropship.database import get_db
from dropship.schemas.common import PaginatedResponse
from dropship.schemas.supplier import SupplierCreate, SupplierOut, SupplierStats, SupplierUpdate
from dropship.schemas.supplier_integration import ConnectionTestOut
from dropship.services import suppliers as service
from dropship.services.supplier_client import SupplierAPIClient, get_supplier_client

router = APIRouter()


@router.get("", response_model=PaginatedResponse[SupplierOut])
async def list_suppliers(
    status_filter: str | None = Query(None, alias="status"),
    search: str | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("supplier.read")),
):
    items, total = await service.list_suppliers(
        db, status=status_filter, search=search, limit=limit, offset=offset,
    )
    return PaginatedResponse[SupplierOut](
        items=[SupplierOut.model_validate(s) for s in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=SupplierOut, status_code=status.HTTP_201_CREATED)
async def create_supplier(
    body: SupplierCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier.write")),
):
    return SupplierOut.model_validate(await service.create_supplier(db, actor, body))


@router.get("/{supplier_id}", response_model=SupplierOut)
async def get_supplier(
    supplier_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("supplier.read")),
):
    return SupplierOut.model_validate(await service.get_supplier(db, supplier_id))


@router.patch("/{supplier_id}", response_model=SupplierOut)
async def update_supplier(
    supplier_id: str,
    body: SupplierUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier.write")),
):
    supplier = await service.get_supplier(db, supplier_id)
    return SupplierOut.model_validate(await service.update_supplier(db, actor, supplier, body))


@router.delete("/{supplier_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_supplier(
    supplier_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier.delete")),
):
    supplier = await service.get_supplier(db, supplier_id)
    await service.delete_supplier(db, actor, supplier)


@router.post("/{supplier_id}/activate", response_model=SupplierOut)
async def activate_supplier(
    supplier_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier.write")),
):
    supplier = await service.get_supplier(db, supplier_id)
    return SupplierOut.model_validate(await service.activate_supplier(db, actor, supplier))


@router.post("/{supplier_id}/deactivate", response_model=SupplierOut)
async def deactivate_supplier(
    supplier_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier.write")),
):
    supplier = await service.get_supplier(db, supplier_id)
    return SupplierOut.model_validate(await service.deactivate_supplier(db, actor, supplier))


@router.get("/{supplier_id}/stats", response_model=SupplierStats)
async def supplier_stats(
    supplier_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("supplier.read")),
):
    supplier = await service.get_supplier(db, supplier_id)
    return await service.get_supplier_stats(db, supplier)


@router.post("/{supplier_id}/test-connection", response_model=ConnectionTestOut)
async def test_connection(
    supplier_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("supplier.test")),
    client: SupplierAPIClient = Depends(get_supplier_client),
):
    supplier = await service.get_supplier(db, supplier_id)
    result = await service.test_supplier_connection(db, actor, supplier, client)
    return ConnectionTestOut(**result.__dict__)
