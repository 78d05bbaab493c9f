"""Dropship order lifecycle tests (service layer)."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from dropship.middleware.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    RetryNotAllowedError,
    ValidationError,
)
from dropship.models import ActivityLog, DropshipOrder
from dropship.schemas.dropship_order import DropshipOrderCreate, StatusChangeRequest
from dropship.services import dropship_orders as service
from dropship.utils.clock import utcnow


@pytest.mark.integration
@pytest.mark.asyncio
class TestCreateDropshipOrder:
    async def test_totals_and_defaults(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier, supplier_price=1000)

        order = await make_dropship_order(supplier, sp, quantity=2)

        assert order.status == "pending"
        assert order.retry_count == 0
        assert order.created_by == admin.id
        assert len(order.items) == 1
        item = order.items[0]
        # No retail on the catalog entry, so the order line's unit price is used
        assert item.supplier_price == 1000
        assert item.retail_price == 2500
        assert item.profit_per_item == 1500
        assert order.total_cost == 2000
        assert order.total_retail == 5000
        assert order.profit_margin == 3000

    async def test_explicit_prices_override_catalog(
        self, db_session, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier, supplier_price=1000, retail_price=1800)

        order = await make_dropship_order(
            supplier, sp,
            items=[{"supplier_product_id": sp.id, "quantity": 3, "supplier_price": 900}],
        )

        assert order.total_cost == 2700
        assert order.total_retail == 5400

    async def test_inactive_supplier_rejected(
        self, db_session, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier(status="inactive")
        sp = await make_supplier_product(supplier)

        with pytest.raises(ValidationError, match="not active"):
            await make_dropship_order(supplier, sp)

    async def test_supplier_product_from_other_supplier_rejected(
        self, db_session, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        other = await make_supplier()
        foreign_sp = await make_supplier_product(other)

        with pytest.raises(ValidationError, match="another supplier"):
            await make_dropship_order(supplier, foreign_sp)

    @pytest.mark.parametrize("catalog, quantity", [
        ({"stock_quantity": 1}, 2),
        ({"minimum_order_quantity": 5}, 2),
        ({"is_active": False}, 1),
        ({"sync_status": "discontinued"}, 1),
    ])
    async def test_unorderable_catalog_entry_rejected(
        self, db_session, make_supplier, make_supplier_product, make_dropship_order,
        catalog, quantity,
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier, **catalog)

        with pytest.raises(ValidationError, match="cannot be ordered") as exc:
            await make_dropship_order(supplier, sp, quantity=quantity)
        assert exc.value.context["supplier_product_id"] == sp.id

        assert (await db_session.execute(select(DropshipOrder))).scalars().all() == []

    async def test_unknown_order_rejected(
        self, db_session, admin, make_supplier, make_supplier_product
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)

        with pytest.raises(NotFoundError):
            await service.create_dropship_order(db_session, admin, DropshipOrderCreate(
                order_id="missing-order",
                supplier_id=supplier.id,
                shipping_address={},
                items=[{"supplier_product_id": sp.id}],
            ))


@pytest.mark.integration
@pytest.mark.asyncio
class TestTransitions:
    async def test_happy_path(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)

        await service.send_to_supplier(db_session, admin, order)
        assert order.status == "sent_to_supplier"
        assert order.sent_to_supplier_at is not None
        assert order.integration_type_used == "manual"

        await service.mark_as_confirmed(db_session, admin, order, "SUP-1001")
        assert order.status == "confirmed"
        assert order.supplier_order_id == "SUP-1001"
        assert order.confirmed_at is not None

        await service.mark_as_shipped(db_session, admin, order, "1Z999", "UPS")
        assert order.status == "shipped"
        assert order.tracking_number == "1Z999"
        assert order.carrier == "UPS"

        await service.mark_as_delivered(db_session, admin, order)
        assert order.status == "delivered"
        assert order.delivered_at is not None
        assert all(item.status == "delivered" for item in order.items)

    async def test_transitions_are_audited(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)

        await service.send_to_supplier(db_session, admin, order)
        await service.mark_as_confirmed(db_session, admin, order, "SUP-1")

        rows = (
            await db_session.execute(
                select(ActivityLog)
                .where(ActivityLog.entity_id == order.id, ActivityLog.action == "status_changed")
                .order_by(ActivityLog.created_at)
            )
        ).scalars().all()
        assert [(r.details["from"], r.details["to"]) for r in rows] == [
            ("pending", "sent_to_supplier"),
            ("sent_to_supplier", "confirmed"),
        ]
        assert all(r.actor_id == admin.id for r in rows)

    async def test_send_twice_rejected(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)
        await service.send_to_supplier(db_session, admin, order)

        with pytest.raises(InvalidStateError, match="already been sent"):
            await service.send_to_supplier(db_session, admin, order)

    async def test_send_with_inactive_supplier_rejected(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)
        supplier.status = "inactive"
        await db_session.flush()

        with pytest.raises(ValidationError, match="Supplier is not active"):
            await service.send_to_supplier(db_session, admin, order)
        assert order.status == "pending"

    async def test_send_records_active_integration_type(
        self, db_session, admin, make_supplier, make_supplier_product,
        make_dropship_order, make_integration,
    ):
        supplier = await make_supplier()
        await make_integration(supplier, integration_type="api")
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)

        await service.send_to_supplier(db_session, admin, order)
        assert order.integration_type_used == "api"

    async def test_cannot_ship_pending_order(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)

        with pytest.raises(InvalidStateError):
            await service.mark_as_shipped(db_session, admin, order, "1Z999")

    async def test_confirm_requires_supplier_order_id(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)

        with pytest.raises(ValidationError, match="supplier_order_id"):
            await service.mark_as_confirmed(db_session, admin, order, "")

    async def test_cancel_appends_reason_to_notes(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp, notes="Gift wrap")

        await service.mark_as_cancelled(db_session, admin, order, "Out of stock")

        assert order.status == "cancelled"
        assert order.cancellation_reason == "Out of stock"
        assert order.notes == "Gift wrap\nCancelled: Out of stock"
        assert order.cancelled_at is not None

    async def test_cannot_cancel_delivered_order(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)
        await service.send_to_supplier(db_session, admin, order)
        await service.mark_as_delivered(db_session, admin, order)

        with pytest.raises(InvalidStateError, match="delivered"):
            await service.mark_as_cancelled(db_session, admin, order, "Too late")
        assert order.status == "delivered"


@pytest.mark.integration
@pytest.mark.asyncio
class TestRetry:
    async def test_retry_is_bounded(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)

        for expected in (1, 2, 3):
            await service.retry(db_session, admin, order)
            assert order.retry_count == expected
            assert order.status == "pending"
            assert order.last_retry_at is not None

        assert service.can_retry(order) is False
        with pytest.raises(RetryNotAllowedError) as exc_info:
            await service.retry(db_session, admin, order)
        assert exc_info.value.context["retry_count"] == 3
        assert exc_info.value.context["max_retry_attempts"] == 3

    async def test_retry_moves_sent_order_back_to_pending(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)
        await service.send_to_supplier(db_session, admin, order)

        await service.retry(db_session, admin, order)
        assert order.status == "pending"
        assert order.retry_count == 1

    async def test_no_retry_once_confirmed(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)
        await service.mark_as_confirmed(db_session, admin, order, "SUP-9")

        assert service.can_retry(order) is False
        with pytest.raises(RetryNotAllowedError):
            await service.retry(db_session, admin, order)

    async def test_no_retry_when_disabled(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp, auto_retry_enabled=False)

        assert service.can_retry(order) is False


@pytest.mark.integration
@pytest.mark.asyncio
class TestBulkAndStatusDispatch:
    async def test_update_status_requires_tracking_for_shipped(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)
        await service.send_to_supplier(db_session, admin, order)

        with pytest.raises(ValidationError, match="tracking_number"):
            await service.update_status(db_session, admin, order, "shipped")

        await service.update_status(
            db_session, admin, order, "shipped",
            StatusChangeRequest(status="shipped", tracking_number="TRK-1", carrier="DHL"),
        )
        assert order.status == "shipped"
        assert order.carrier == "DHL"

    async def test_bulk_cancel_counts_each_order(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        first = await make_dropship_order(supplier, sp)
        second = await make_dropship_order(supplier, sp)
        delivered = await make_dropship_order(supplier, sp)
        await service.send_to_supplier(db_session, admin, delivered)
        await service.mark_as_delivered(db_session, admin, delivered)
        ids = [first.id, second.id, delivered.id]

        result = await service.bulk_update_status(
            db_session, admin, ids, "cancelled",
            StatusChangeRequest(status="cancelled", reason="Customer request"),
        )

        assert result["success"] == 2
        assert result["failed"] == 1
        assert len(result["errors"]) == 1
        assert ids[2] in result["errors"][0]

        statuses = {}
        for order_id in ids:
            order = await db_session.get(DropshipOrder, order_id)
            await db_session.refresh(order)
            statuses[order_id] = order.status
        assert statuses == {ids[0]: "cancelled", ids[1]: "cancelled", ids[2]: "delivered"}

    async def test_bulk_reports_missing_orders(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)

        result = await service.bulk_update_status(
            db_session, admin, [order.id, "does-not-exist"], "sent_to_supplier"
        )

        assert result["success"] == 1
        assert result["failed"] == 1
        assert "does-not-exist" in result["errors"][0]


@pytest.mark.integration
@pytest.mark.asyncio
class TestDeleteAndStats:
    async def test_delete_pending_order(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)
        order_id = order.id

        await service.delete_dropship_order(db_session, admin, order)

        with pytest.raises(NotFoundError):
            await service.get_dropship_order(db_session, order_id)

    async def test_cannot_delete_sent_order(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)
        await service.send_to_supplier(db_session, admin, order)

        with pytest.raises(ConflictError):
            await service.delete_dropship_order(db_session, admin, order)

    async def test_overdue_listing_and_stats(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier(name="Acme Wholesale")
        sp = await make_supplier_product(supplier)
        today = utcnow().date()
        late = await make_dropship_order(
            supplier, sp, estimated_delivery=(today - timedelta(days=2)).isoformat()
        )
        on_time = await make_dropship_order(
            supplier, sp, estimated_delivery=(today + timedelta(days=5)).isoformat()
        )
        cancelled = await make_dropship_order(supplier, sp)
        await service.mark_as_cancelled(db_session, admin, cancelled, "Duplicate")

        assert late.is_overdue(today) is True
        assert on_time.is_overdue(today) is False

        items, total = await service.list_dropship_orders(db_session, overdue=True, today=today)
        assert total == 1
        assert items[0].id == late.id

        stats = await service.get_dropship_stats(db_session, today=today)
        assert stats["total_orders"] == 3
        assert stats["pending_orders"] == 2
        assert stats["cancelled_orders"] == 1
        assert stats["overdue_orders"] == 1
        assert stats["total_profit"] == late.profit_margin + on_time.profit_margin
        assert stats["by_supplier"][0]["supplier_name"] == "Acme Wholesale"
        assert stats["by_supplier"][0]["orders"] == 3
