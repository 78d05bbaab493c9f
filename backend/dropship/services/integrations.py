"""Supplier integration health and sync service.

Health bookkeeping:
  - success → failures reset, status back to active, statistics bumped
  - failure → failures +1, last_error set; once failures exceed
    max_retry_attempts the status flips to error
  - health score (0–100): 100, −20 per consecutive failure, −30 when no
    success in the recent window, −(100 − success_rate)/5 once syncs have
    been recorded; 0 for inactive integrations

Only one integration per supplier may be active.  Enabling one locks the
supplier row and deactivates the siblings in the same transaction.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.auth.deps import Actor
from dropship.config import settings
from dropship.middleware.exceptions import ConflictError, NotFoundError, ValidationError
from dropship.models.supplier import Supplier
from dropship.models.supplier_integration import (
    IntegrationStatus,
    SupplierIntegration,
    empty_sync_statistics,
)
from dropship.models.supplier_product import SupplierProduct, SyncStatus
from dropship.schemas.supplier_integration import IntegrationCreate, IntegrationUpdate
from dropship.services import supplier_products as catalog
from dropship.services.supplier_client import (
    ConnectionTestResult,
    SupplierAPIClient,
    SupplierClientError,
)
from dropship.utils.activity import log_activity
from dropship.utils.clock import utcnow

logger = logging.getLogger(__name__)

HEALTH_LABELS = [
    (80, "Excellent"),
    (60, "Good"),
    (40, "Fair"),
    (20, "Poor"),
]


@dataclass
class SyncResult:
    integration_id: str
    success: bool
    products_processed: int = 0
    products_updated: int = 0
    products_missing: int = 0
    duration_ms: int = 0
    error: str | None = None
    errors: list[str] = field(default_factory=list)


# ── Lookups ──────────────────────────────────────────────────

async def get_integration(db: AsyncSession, integration_id: str) -> SupplierIntegration:
    integration = await db.get(SupplierIntegration, integration_id)
    if not integration:
        raise NotFoundError("Supplier integration", integration_id)
    return integration


async def get_active_integration(db: AsyncSession, supplier_id: str) -> SupplierIntegration | None:
    result = await db.execute(
        select(SupplierIntegration).where(
            SupplierIntegration.supplier_id == supplier_id,
            SupplierIntegration.is_active == True,  # noqa: E712
        )
    )
    return result.scalars().first()


async def list_integrations(
    db: AsyncSession,
    *,
    supplier_id: str | None = None,
    is_active: bool | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[SupplierIntegration], int]:
    stmt = select(SupplierIntegration)
    if supplier_id:
        stmt = stmt.where(SupplierIntegration.supplier_id == supplier_id)
    if is_active is not None:
        stmt = stmt.where(SupplierIntegration.is_active == is_active)
    if status:
        stmt = stmt.where(SupplierIntegration.status == status)

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    rows = await db.execute(
        stmt.order_by(SupplierIntegration.created_at.desc()).limit(limit).offset(offset)
    )
    return list(rows.scalars().all()), total


# ── Health ───────────────────────────────────────────────────

def get_health_score(integration: SupplierIntegration, now: datetime | None = None) -> int:
    if not integration.is_active:
        return 0
    now = now or utcnow()

    score = 100.0
    score -= 20 * (integration.consecutive_failures or 0)

    recent = timedelta(hours=settings.integration_recent_sync_hours)
    if integration.last_successful_sync is None or now - integration.last_successful_sync > recent:
        score -= 30

    if (integration.sync_statistics or {}).get("total_syncs"):
        score -= (100 - integration.success_rate()) / 5

    return int(max(0, min(100, round(score))))


def health_label(score: int) -> str:
    for threshold, label in HEALTH_LABELS:
        if score >= threshold:
            return label
    return "Critical"


def _resting_status(integration: SupplierIntegration) -> str:
    return IntegrationStatus.ACTIVE.value if integration.is_active else IntegrationStatus.INACTIVE.value


def record_successful_sync(
    integration: SupplierIntegration,
    meta: dict | None = None,
    *,
    now: datetime | None = None,
) -> None:
    meta = meta or {}
    stats = {**empty_sync_statistics(), **(integration.sync_statistics or {})}
    stats["total_syncs"] += 1
    stats["successful_syncs"] += 1
    stats["products_synced"] += int(meta.get("products_updated", 0))
    stats["last_sync_duration_ms"] = int(meta.get("duration_ms", 0))
    stats["last_sync"] = meta

    integration.sync_statistics = stats
    integration.last_successful_sync = now or utcnow()
    integration.consecutive_failures = 0
    integration.last_error = None
    integration.status = _resting_status(integration)


def record_failed_sync(
    integration: SupplierIntegration,
    error_message: str,
    *,
    now: datetime | None = None,
) -> None:
    stats = {**empty_sync_statistics(), **(integration.sync_statistics or {})}
    stats["total_syncs"] += 1
    stats["failed_syncs"] += 1

    integration.sync_statistics = stats
    integration.last_failed_sync = now or utcnow()
    integration.consecutive_failures = (integration.consecutive_failures or 0) + 1
    integration.last_error = error_message
    if integration.consecutive_failures > integration.max_retry_attempts:
        integration.status = IntegrationStatus.ERROR.value

    logger.warning(
        "Supplier integration sync failed",
        extra={
            "integration_id": integration.id,
            "consecutive_failures": integration.consecutive_failures,
            "error": error_message,
        },
    )


def reset_failures(integration: SupplierIntegration) -> None:
    integration.consecutive_failures = 0
    integration.last_error = None
    integration.status = _resting_status(integration)


# ── Single-active invariant ──────────────────────────────────

async def _deactivate_siblings(db: AsyncSession, integration: SupplierIntegration) -> list[str]:
    """Lock the supplier and switch off its other active integrations."""
    await db.execute(
        select(Supplier.id).where(Supplier.id == integration.supplier_id).with_for_update()
    )
    result = await db.execute(
        select(SupplierIntegration)
        .where(
            SupplierIntegration.supplier_id == integration.supplier_id,
            SupplierIntegration.id != integration.id,
            SupplierIntegration.is_active == True,  # noqa: E712
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    deactivated = []
    for sibling in result.scalars().all():
        sibling.is_active = False
        sibling.status = IntegrationStatus.INACTIVE.value
        deactivated.append(sibling.id)
    return deactivated


async def enable(db: AsyncSession, actor: Actor, integration: SupplierIntegration) -> SupplierIntegration:
    deactivated = await _deactivate_siblings(db, integration)
    await db.flush()

    integration.is_active = True
    integration.status = IntegrationStatus.ACTIVE.value
    integration.consecutive_failures = 0
    integration.last_error = None

    supplier = await db.get(Supplier, integration.supplier_id)
    if supplier is not None:
        supplier.integration_type = integration.integration_type
    await db.flush()

    await log_activity(
        db, actor,
        action="enabled",
        entity_type="supplier_integration",
        entity_id=integration.id,
        details={"deactivated": deactivated},
    )
    logger.info(
        "Supplier integration enabled",
        extra={"integration_id": integration.id, "deactivated": deactivated},
    )
    return integration


async def disable(db: AsyncSession, actor: Actor, integration: SupplierIntegration) -> SupplierIntegration:
    integration.is_active = False
    integration.status = IntegrationStatus.INACTIVE.value
    await db.flush()
    await log_activity(
        db, actor, action="disabled", entity_type="supplier_integration", entity_id=integration.id,
    )
    return integration


# ── CRUD ─────────────────────────────────────────────────────

async def create_integration(
    db: AsyncSession, actor: Actor, body: IntegrationCreate
) -> SupplierIntegration:
    supplier = await db.get(Supplier, body.supplier_id)
    if not supplier:
        raise NotFoundError("Supplier", body.supplier_id)

    integration = SupplierIntegration(
        **body.model_dump(exclude={"is_active"}),
        is_active=False,
        status=IntegrationStatus.INACTIVE.value,
        consecutive_failures=0,
        sync_statistics=empty_sync_statistics(),
    )
    db.add(integration)
    await db.flush()

    await log_activity(
        db, actor,
        action="created",
        entity_type="supplier_integration",
        entity_id=integration.id,
        summary=f"Added {integration.integration_type} integration {integration.name} for {supplier.name}",
    )

    if body.is_active:
        await enable(db, actor, integration)
    return integration


async def update_integration(
    db: AsyncSession, actor: Actor, integration: SupplierIntegration, body: IntegrationUpdate
) -> SupplierIntegration:
    changes = body.model_dump(exclude_unset=True)
    for key in ("configuration", "authentication"):
        if key in changes and changes[key] is not None:
            changes[key] = {**(getattr(integration, key) or {}), **changes[key]}
    for name, value in changes.items():
        setattr(integration, name, value)
    await db.flush()

    await log_activity(
        db, actor,
        action="updated",
        entity_type="supplier_integration",
        entity_id=integration.id,
        details={"fields": sorted(changes)},
    )
    return integration


async def delete_integration(db: AsyncSession, actor: Actor, integration: SupplierIntegration) -> None:
    if integration.is_active:
        raise ConflictError(
            "Cannot delete an active integration. Disable it first.",
            {"integration_id": integration.id},
        )
    integration_id = integration.id
    await db.delete(integration)
    await db.flush()
    await log_activity(
        db, actor, action="deleted", entity_type="supplier_integration", entity_id=integration_id,
    )


# ── Connection test ──────────────────────────────────────────

async def run_connection_test(
    db: AsyncSession,
    actor: Actor,
    integration: SupplierIntegration,
    client: SupplierAPIClient,
) -> ConnectionTestResult:
    """Test the connection and fold the outcome into the health counters."""
    result = await client.test_connection(integration)
    if result.success:
        reset_failures(integration)
    else:
        record_failed_sync(integration, result.message)
    await db.flush()

    await log_activity(
        db, actor,
        action="connection_tested",
        entity_type="supplier_integration",
        entity_id=integration.id,
        details={"success": result.success, "status_code": result.status_code},
    )
    logger.info(
        "Supplier connection test",
        extra={
            "integration_id": integration.id,
            "integration_type": integration.integration_type,
            "success": result.success,
            "tested_by": actor.id,
        },
    )
    return result


# ── Catalog sync ─────────────────────────────────────────────

async def sync_integration(
    db: AsyncSession,
    integration: SupplierIntegration,
    client: SupplierAPIClient,
    *,
    actor: Actor | None = None,
    now: datetime | None = None,
) -> SyncResult:
    """Pull the supplier catalog and apply price/stock to our catalog entries.

    Supplier-level failures are recorded on the integration and returned,
    not raised, so the failure bookkeeping commits with the request.
    """
    if not integration.is_active:
        raise ValidationError(
            "Integration is not active", {"integration_id": integration.id}
        )
    if not integration.is_automated():
        raise ValidationError(
            f"{integration.integration_type} integrations cannot be synced automatically",
            {"integration_id": integration.id},
        )
    if not integration.pulls_catalog():
        raise ValidationError(
            f"{integration.integration_type} integrations push catalog updates; there is nothing to pull",
            {"integration_id": integration.id},
        )

    now = now or utcnow()
    integration_id = integration.id
    started = time.perf_counter()

    try:
        entries = await client.fetch_catalog(integration)
    except SupplierClientError as e:
        record_failed_sync(integration, str(e), now=now)
        await db.flush()
        return SyncResult(
            integration_id=integration_id,
            success=False,
            duration_ms=int((time.perf_counter() - started) * 1000),
            error=str(e),
        )

    supplier = await db.get(Supplier, integration.supplier_id)
    result = SyncResult(integration_id=integration_id, success=True)

    rows = (
        await db.execute(
            select(SupplierProduct).where(SupplierProduct.supplier_id == integration.supplier_id)
        )
    ).scalars().all()
    by_sku = {sp.supplier_sku: sp for sp in rows}
    seen: set[str] = set()

    for entry in entries:
        result.products_processed += 1
        supplier_product = by_sku.get(entry.sku)
        if supplier_product is None:
            result.products_missing += 1
            continue
        seen.add(entry.sku)
        sp_id = supplier_product.id

        try:
            async with db.begin_nested():
                changed = False
                if (
                    entry.price is not None
                    and supplier.price_sync_enabled
                    and entry.price != supplier_product.supplier_price
                ):
                    await catalog.update_price(db, supplier_product, entry.price, now=now)
                    changed = True
                if (
                    entry.stock is not None
                    and supplier.stock_sync_enabled
                    and entry.stock != supplier_product.stock_quantity
                ):
                    await catalog.set_stock(db, supplier_product, entry.stock, now=now)
                    changed = True
                if entry.description is not None and entry.description != supplier_product.description:
                    supplier_product.description = entry.description
                    changed = True

                if entry.discontinued:
                    supplier_product.sync_status = SyncStatus.DISCONTINUED.value
                    supplier_product.is_active = False
                else:
                    supplier_product.sync_status = SyncStatus.SYNCED.value
                supplier_product.sync_errors = None
                supplier_product.last_synced_at = now
            if changed:
                result.products_updated += 1
        except Exception as e:
            logger.exception("Catalog sync failed for supplier product %s", sp_id)
            result.errors.append(f"{entry.sku}: {e}")
            failed = await db.get(SupplierProduct, sp_id)
            if failed is not None:
                failed.sync_status = SyncStatus.ERROR.value
                failed.sync_errors = str(e)[:1000]

    for sku, supplier_product in by_sku.items():
        if sku not in seen and supplier_product.sync_status == SyncStatus.SYNCED.value:
            supplier_product.sync_status = SyncStatus.OUT_OF_SYNC.value

    result.duration_ms = int((time.perf_counter() - started) * 1000)
    record_successful_sync(
        integration,
        {
            "manual_sync": actor is not None,
            "initiated_by": actor.id if actor else None,
            "products_processed": result.products_processed,
            "products_updated": result.products_updated,
            "duration_ms": result.duration_ms,
        },
        now=now,
    )
    if supplier is not None:
        supplier.last_sync_at = now
    await db.flush()

    if actor is not None:
        await log_activity(
            db, actor,
            action="synced",
            entity_type="supplier_integration",
            entity_id=integration_id,
            summary=f"Synced {result.products_updated} of {result.products_processed} catalog lines",
        )
    logger.info(
        "Supplier catalog synced",
        extra={
            "integration_id": integration_id,
            "processed": result.products_processed,
            "updated": result.products_updated,
            "missing": result.products_missing,
        },
    )
    return result


async def run_due_syncs(
    db: AsyncSession,
    client: SupplierAPIClient,
    *,
    now: datetime | None = None,
) -> dict:
    """Sync every active, automated integration whose interval has elapsed.

    Push channels (webhook, FTP drop) are due on the same schedule but have
    nothing to fetch; they are counted as skipped and their health is left
    alone.
    """
    now = now or utcnow()
    active = (
        await db.execute(
            select(SupplierIntegration).where(SupplierIntegration.is_active == True)  # noqa: E712
        )
    ).scalars().all()
    due = [i for i in active if i.needs_sync(now)]

    summary = {"checked": len(active), "synced": 0, "failed": 0, "skipped": 0}
    for integration in due:
        if not integration.pulls_catalog():
            summary["skipped"] += 1
            continue
        result = await sync_integration(db, integration, client, now=now)
        if result.success:
            summary["synced"] += 1
        else:
            summary["failed"] += 1

    logger.info("Due supplier syncs complete", extra=summary)
    return summary
