"""Supplier delete guards."""

import pytest
from sqlalchemy import select

from dropship.middleware.exceptions import ConflictError
from dropship.models import Supplier, SupplierIntegration
from dropship.services import dropship_orders as order_service
from dropship.services import supplier_products as catalog_service
from dropship.services import suppliers as service


@pytest.mark.integration
@pytest.mark.asyncio
class TestDeleteSupplier:
    async def test_open_order_blocks_delete(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        await make_dropship_order(supplier, sp)

        with pytest.raises(ConflictError):
            await service.delete_supplier(db_session, admin, supplier)

    @pytest.mark.parametrize("close", ["cancel", "deliver"])
    async def test_closed_order_history_blocks_delete(
        self, db_session, admin, make_supplier, make_supplier_product, make_dropship_order, close
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        order = await make_dropship_order(supplier, sp)
        if close == "cancel":
            await order_service.mark_as_cancelled(db_session, admin, order, "Customer changed mind")
        else:
            await order_service.send_to_supplier(db_session, admin, order)
            await order_service.mark_as_confirmed(db_session, admin, order, "SUP-9")
            await order_service.mark_as_shipped(db_session, admin, order, "1Z1", "UPS")
            await order_service.mark_as_delivered(db_session, admin, order)
        # Closed orders no longer pin the catalog entry
        await catalog_service.delete_supplier_product(db_session, admin, sp)

        with pytest.raises(ConflictError, match="order history") as exc:
            await service.delete_supplier(db_session, admin, supplier)
        assert exc.value.context["dropship_orders"] == 1
        assert await db_session.get(Supplier, supplier.id) is not None

    async def test_catalog_entries_block_delete(
        self, db_session, admin, make_supplier, make_supplier_product
    ):
        supplier = await make_supplier()
        await make_supplier_product(supplier)

        with pytest.raises(ConflictError, match="catalog entries"):
            await service.delete_supplier(db_session, admin, supplier)

    async def test_integrations_removed_with_supplier(
        self, db_session, admin, make_supplier, make_integration
    ):
        supplier = await make_supplier()
        supplier_id = supplier.id
        await make_integration(supplier, is_active=False, status="inactive")
        await make_integration(supplier, integration_type="manual", is_active=False, status="inactive")

        await service.delete_supplier(db_session, admin, supplier)

        assert await db_session.get(Supplier, supplier_id) is None
        leftover = (
            await db_session.execute(
                select(SupplierIntegration).where(SupplierIntegration.supplier_id == supplier_id)
            )
        ).scalars().all()
        assert leftover == []
