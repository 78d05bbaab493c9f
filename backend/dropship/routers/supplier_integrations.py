"""Supplier integration administration.

Endpoints:
    GET    /api/supplier-integrations                       List
    POST   /api/supplier-integrations                       Create (inactive unless is_active)
    GET    /api/supplier-integrations/{id}                  Detail with health
    PATCH  /api/supplier-integrations/{id}                  Edit config / policy
    DELETE /api/supplier-integrations/{id}                  Delete (must be disabled)
    POST   /api/supplier-integrations/{id}/enable           Activate, deactivating siblings
    POST   /api/supplier-integrations/{id}/disable          Deactivate
    POST   /api/supplier-integrations/{id}/test             Connection test → health counters
    POST   /api/supplier-integrations/{id}/sync             Pull catalog now
    POST   /api/supplier-integrations/{id}/reset-failures   Clear failure counters
    GET    /api/supplier-integrations/{id}/health           Health score breakdown
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.auth.deps import Actor, require_permission
from dropship.database import get_db
from dropship.models.supplier_integration import SupplierIntegration
from dropship.schemas.common import PaginatedResponse
from dropship.schemas.supplier_integration import (
    ConnectionTestOut,
    IntegrationCreate,
    IntegrationHealth,
    IntegrationOut,
    IntegrationRecord,
    IntegrationUpdate,
    SyncResultOut,
)
from dropship.services import integrations as service
from dropship.services.supplier_client import SupplierAPIClient, get_supplier_client
from dropship.utils.clock import utcnow

router = APIRouter()


def _to_out(integration: SupplierIntegration) -> IntegrationOut:
    now = utcnow()
    score = service.get_health_score(integration, now)
    return IntegrationOut(
        **IntegrationRecord.model_validate(integration).model_dump(),
        is_automated=integration.is_automated(),
        needs_sync=integration.needs_sync(now),
        can_retry=integration.can_retry(),
        success_rate=integration.success_rate(),
        health_score=score,
        health_label=service.health_label(score),
    )


@router.get("", response_model=PaginatedResponse[IntegrationOut])
async def list_integrations(
    supplier_id: str | None = Query(None),
    is_active: bool | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("integration.read")),
):
    items, total = await service.list_integrations(
        db, supplier_id=supplier_id, is_active=is_active, status=status_filter,
        limit=limit, offset=offset,
    )
    return PaginatedResponse[IntegrationOut](
        items=[_to_out(i) for i in items], total=total, limit=limit, offset=offset,
    )


@router.post("", response_model=IntegrationOut, status_code=status.HTTP_201_CREATED)
async def create_integration(
    body: IntegrationCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("integration.write")),
):
    return _to_out(await service.create_integration(db, actor, body))


@router.get("/{integration_id}", response_model=IntegrationOut)
async def get_integration(
    integration_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("integration.read")),
):
    return _to_out(await service.get_integration(db, integration_id))


@router.patch("/{integration_id}", response_model=IntegrationOut)
async def update_integration(
    integration_id: str,
    body: IntegrationUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("integration.write")),
):
    integration = await service.get_integration(db, integration_id)
    return _to_out(await service.update_integration(db, actor, integration, body))


@router.delete("/{integration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_integration(
    integration_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("integration.delete")),
):
    integration = await service.get_integration(db, integration_id)
    await service.delete_integration(db, actor, integration)


@router.post("/{integration_id}/enable", response_model=IntegrationOut)
async def enable_integration(
    integration_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("integration.write")),
):
    integration = await service.get_integration(db, integration_id)
    return _to_out(await service.enable(db, actor, integration))


@router.post("/{integration_id}/disable", response_model=IntegrationOut)
async def disable_integration(
    integration_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("integration.write")),
):
    integration = await service.get_integration(db, integration_id)
    return _to_out(await service.disable(db, actor, integration))


@router.post("/{integration_id}/test", response_model=ConnectionTestOut)
async def test_integration(
    integration_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("integration.test")),
    client: SupplierAPIClient = Depends(get_supplier_client),
):
    integration = await service.get_integration(db, integration_id)
    result = await service.run_connection_test(db, actor, integration, client)
    return ConnectionTestOut(**result.__dict__)


@router.post("/{integration_id}/sync", response_model=SyncResultOut)
async def sync_now(
    integration_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("integration.sync")),
    client: SupplierAPIClient = Depends(get_supplier_client),
):
    integration = await service.get_integration(db, integration_id)
    result = await service.sync_integration(db, integration, client, actor=actor)
    return SyncResultOut(
        integration_id=result.integration_id,
        success=result.success,
        products_processed=result.products_processed,
        products_updated=result.products_updated,
        products_missing=result.products_missing,
        duration_ms=result.duration_ms,
        error=result.error,
        errors=result.errors,
    )


@router.post("/{integration_id}/reset-failures", response_model=IntegrationOut)
async def reset_failures(
    integration_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("integration.write")),
):
    integration = await service.get_integration(db, integration_id)
    service.reset_failures(integration)
    return _to_out(integration)


@router.get("/{integration_id}/health", response_model=IntegrationHealth)
async def integration_health(
    integration_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(require_permission("integration.read")),
):
    integration = await service.get_integration(db, integration_id)
    now = utcnow()
    score = service.get_health_score(integration, now)
    return IntegrationHealth(
        integration_id=integration.id,
        health_score=score,
        health_label=service.health_label(score),
        success_rate=integration.success_rate(),
        consecutive_failures=integration.consecutive_failures,
        last_successful_sync=integration.last_successful_sync,
        last_error=integration.last_error,
        needs_sync=integration.needs_sync(now),
        can_retry=integration.can_retry(),
    )
