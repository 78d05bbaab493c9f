"""Dropship order administration.

Endpoints:
    GET    /api/dropship-orders               List (filter by supplier, status, order, overdue)
    POST   /api/dropship-orders               Route order items to a supplier
    GET    /api/dropship-orders/stats         Totals, by status, by supplier
    POST   /api/dropship-orders/bulk-status   Move many orders to one status
    GET    /api/dropship-orders/{id}          Detail
    PATCH  /api/dropship-orders/{id}          Edit notes / address / ETA
    DELETE /api/dropship-orders/{id}          Delete (pending or cancelled only)
    POST   /api/dropship-orders/{id}/send     pending → sent_to_supplier
    POST   /api/dropship-orders/{id}/confirm  → confirmed
    POST   /api/dropship-orders/{id}/ship     → shipped
    POST   /api/dropship-orders/{id}/deliver  → delivered
    POST   /api/dropship-orders/{id}/cancel   → cancelled
    POST   /api/dropship-orders/{id}/retry    → pending (bounded retries)
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.auth.deps import Actor, require_permission
from dropship.database import get_db
from dropship.schemas.common import BulkActionResult, PaginatedResponse
from dropship.schemas.dropship_order import (
    BulkStatusRequest,
    CancelRequest,
    ConfirmRequest,
    DropshipOrderCreate,
    DropshipOrderOut,
    DropshipOrderUpdate,
    DropshipStats,
    ShipRequest,
)
from dropship.services import dropship_orders as service

router = APIRouter()


# ── Collection ───────────────────────────────────────────────

@router.get("", response_model=PaginatedResponse[DropshipOrderOut])
async def list_dropship_orders(
    supplier_id: str | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
    order_id: str | None = Query(None),
    overdue: bool = Query(False),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("dropship.read")),
):
    items, total = await service.list_dropship_orders(
        db,
        supplier_id=supplier_id,
        status=status_filter,
        order_id=order_id,
        overdue=overdue,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse[DropshipOrderOut](
        items=[DropshipOrderOut.model_validate(o) for o in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=DropshipOrderOut, status_code=status.HTTP_201_CREATED)
async def create_dropship_order(
    body: DropshipOrderCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("dropship.write")),
):
    order = await service.create_dropship_order(db, actor, body)
    return DropshipOrderOut.model_validate(order)


@router.get("/stats", response_model=DropshipStats)
async def dropship_stats(
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("dropship.analytics")),
):
    return await service.get_dropship_stats(db)


@router.post("/bulk-status", response_model=BulkActionResult)
async def bulk_update_status(
    body: BulkStatusRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("dropship.bulk")),
):
    """Apply one status to many orders; each order succeeds or fails on its own."""
    return await service.bulk_update_status(db, actor, body.dropship_order_ids, body.status, body)


# ── Single order ─────────────────────────────────────────────

@router.get("/{dropship_order_id}", response_model=DropshipOrderOut)
async def get_dropship_order(
    dropship_order_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("dropship.read")),
):
    return DropshipOrderOut.model_validate(await service.get_dropship_order(db, dropship_order_id))


@router.patch("/{dropship_order_id}", response_model=DropshipOrderOut)
async def update_dropship_order(
    dropship_order_id: str,
    body: DropshipOrderUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("dropship.write")),
):
    order = await service.get_dropship_order(db, dropship_order_id)
    order = await service.update_dropship_order(db, actor, order, body)
    return DropshipOrderOut.model_validate(order)


@router.delete("/{dropship_order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_dropship_order(
    dropship_order_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("dropship.delete")),
):
    order = await service.get_dropship_order(db, dropship_order_id)
    await service.delete_dropship_order(db, actor, order)


# ── Workflow actions ─────────────────────────────────────────

@router.post("/{dropship_order_id}/send", response_model=DropshipOrderOut)
async def send_to_supplier(
    dropship_order_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("dropship.write")),
):
    order = await service.get_dropship_order(db, dropship_order_id)
    return DropshipOrderOut.model_validate(await service.send_to_supplier(db, actor, order))


@router.post("/{dropship_order_id}/confirm", response_model=DropshipOrderOut)
async def confirm(
    dropship_order_id: str,
    body: ConfirmRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("dropship.write")),
):
    order = await service.get_dropship_order(db, dropship_order_id)
    order = await service.mark_as_confirmed(
        db, actor, order, body.supplier_order_id, body.supplier_response, body.estimated_delivery,
    )
    return DropshipOrderOut.model_validate(order)


@router.post("/{dropship_order_id}/ship", response_model=DropshipOrderOut)
async def ship(
    dropship_order_id: str,
    body: ShipRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("dropship.write")),
):
    order = await service.get_dropship_order(db, dropship_order_id)
    order = await service.mark_as_shipped(
        db, actor, order, body.tracking_number, body.carrier, body.estimated_delivery,
    )
    return DropshipOrderOut.model_validate(order)


@router.post("/{dropship_order_id}/deliver", response_model=DropshipOrderOut)
async def deliver(
    dropship_order_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("dropship.write")),
):
    order = await service.get_dropship_order(db, dropship_order_id)
    return DropshipOrderOut.model_validate(await service.mark_as_delivered(db, actor, order))


@router.post("/{dropship_order_id}/cancel", response_model=DropshipOrderOut)
async def cancel(
    dropship_order_id: str,
    body: CancelRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("dropship.cancel")),
):
    order = await service.get_dropship_order(db, dropship_order_id)
    return DropshipOrderOut.model_validate(
        await service.mark_as_cancelled(db, actor, order, body.reason)
    )


@router.post("/{dropship_order_id}/retry", response_model=DropshipOrderOut)
async def retry(
    dropship_order_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("dropship.retry")),
):
    order = await service.get_dropship_order(db, dropship_order_id)
    return DropshipOrderOut.model_validate(await service.retry(db, actor, order))
