"""Supplier catalog tests: propagation through mappings, delete guards, bulk."""

import pytest
from sqlalchemy import select

from dropship.middleware.exceptions import ConflictError, ValidationError
from dropship.models import Product, ProductSupplierMapping, SupplierProduct
from dropship.schemas.supplier_product import (
    MapToProductRequest,
    PriceLine,
    StockLine,
    SupplierProductCreate,
    SupplierProductUpdate,
)
from dropship.services import dropship_orders as order_service
from dropship.services import supplier_products as service


@pytest.mark.integration
@pytest.mark.asyncio
class TestCatalogCrud:
    async def test_duplicate_sku_per_supplier_rejected(self, db_session, admin, make_supplier):
        supplier = await make_supplier()
        body = SupplierProductCreate(
            supplier_id=supplier.id, supplier_sku="MUG-01", name="Mug", supplier_price=400,
        )
        await service.create_supplier_product(db_session, admin, body)

        with pytest.raises(ConflictError, match="MUG-01"):
            await service.create_supplier_product(db_session, admin, body)

    async def test_same_sku_allowed_for_other_supplier(self, db_session, admin, make_supplier):
        for supplier in (await make_supplier(), await make_supplier()):
            sp = await service.create_supplier_product(db_session, admin, SupplierProductCreate(
                supplier_id=supplier.id, supplier_sku="MUG-01", name="Mug", supplier_price=400,
            ))
            assert sp.supplier_id == supplier.id

    async def test_update_propagates_price_and_stock(
        self, db_session, admin, make_supplier, make_product, make_supplier_product, make_mapping
    ):
        product = await make_product()
        sp = await make_supplier_product(await make_supplier(), supplier_price=1000)
        await make_mapping(product, sp, markup_percentage=20)

        await service.update_supplier_product(db_session, admin, sp, SupplierProductUpdate(
            supplier_price=1500, stock_quantity=9, name="Renamed",
        ))

        assert sp.name == "Renamed"
        assert sp.retail_price == 1800
        assert product.price == 1800
        assert product.supplier_cost == 1500
        assert product.quantity == 9


@pytest.mark.integration
@pytest.mark.asyncio
class TestPropagation:
    async def test_retail_override_wins_over_markup(
        self, db_session, make_supplier, make_product, make_supplier_product, make_mapping
    ):
        product = await make_product()
        sp = await make_supplier_product(await make_supplier(), supplier_price=1000)
        await make_mapping(product, sp, markup_percentage=50)

        await service.update_price(db_session, sp, 1100, retail_price=1999)

        assert sp.retail_price == 1999
        assert product.price == 1999
        assert product.supplier_cost == 1100

    async def test_secondary_mapping_does_not_write_through(
        self, db_session, make_supplier, make_product, make_supplier_product, make_mapping
    ):
        product = await make_product()
        primary_sp = await make_supplier_product(await make_supplier(), supplier_price=1000)
        backup_sp = await make_supplier_product(await make_supplier(), supplier_price=900)
        await make_mapping(product, primary_sp, markup_percentage=50)
        await make_mapping(product, backup_sp, markup_percentage=50)
        product.price = 1500

        await service.update_price(db_session, backup_sp, 700)
        await service.set_stock(db_session, backup_sp, 50)

        assert backup_sp.supplier_price == 700
        assert backup_sp.stock_quantity == 50
        assert product.price == 1500
        assert product.quantity == 0

    async def test_negative_values_rejected(self, db_session, make_supplier, make_supplier_product):
        sp = await make_supplier_product(await make_supplier())

        with pytest.raises(ValidationError):
            await service.set_stock(db_session, sp, -3)
        with pytest.raises(ValidationError):
            await service.update_price(db_session, sp, -1)


@pytest.mark.integration
@pytest.mark.asyncio
class TestMapToProduct:
    async def test_create_new_product_from_catalog_entry(
        self, db_session, admin, make_supplier, make_supplier_product
    ):
        sp = await make_supplier_product(
            await make_supplier(), name="Walnut tray", supplier_price=1200, stock_quantity=6
        )

        mapping = await service.map_to_product(
            db_session, admin, sp, MapToProductRequest(create_new_product=True)
        )

        product = await db_session.get(Product, mapping.product_id)
        assert product.name == "Walnut tray"
        assert product.is_dropship is True
        # default markup is 100%
        assert product.price == 2400
        assert product.quantity == 6
        assert mapping.is_primary is True
        assert sp.is_mapped is True
        assert sp.product_id == product.id

    async def test_map_onto_existing_product(
        self, db_session, admin, make_supplier, make_product, make_supplier_product
    ):
        product = await make_product(name="Oak tray")
        sp = await make_supplier_product(await make_supplier(), supplier_price=1000)

        mapping = await service.map_to_product(db_session, admin, sp, MapToProductRequest(
            product_id=product.id, markup_type="fixed", fixed_markup=450,
        ))

        assert mapping.product_id == product.id
        assert product.price == 1450
        assert product.primary_supplier_id == sp.supplier_id

    async def test_already_mapped_entry_cannot_create_product(
        self, db_session, admin, make_supplier, make_supplier_product
    ):
        sp = await make_supplier_product(await make_supplier())
        await service.map_to_product(
            db_session, admin, sp, MapToProductRequest(create_new_product=True)
        )

        with pytest.raises(ConflictError, match="already mapped"):
            await service.map_to_product(
                db_session, admin, sp, MapToProductRequest(create_new_product=True)
            )

    async def test_target_required(self):
        with pytest.raises(ValueError):
            MapToProductRequest()


@pytest.mark.integration
@pytest.mark.asyncio
class TestDelete:
    async def test_open_order_blocks_delete_until_finished(
        self, db_session, admin, make_supplier, make_product, make_supplier_product,
        make_mapping, make_dropship_order,
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        mapping = await make_mapping(await make_product(), sp)
        order = await make_dropship_order(supplier, sp)
        sp_id = sp.id
        mapping_id = mapping.id

        with pytest.raises(ConflictError) as exc_info:
            await service.delete_supplier_product(db_session, admin, sp)
        assert exc_info.value.context["dropship_order_ids"] == [order.id]

        await order_service.mark_as_cancelled(db_session, admin, order, "Supplier discontinued")
        await service.delete_supplier_product(db_session, admin, sp)

        assert await db_session.get(SupplierProduct, sp_id) is None
        remaining = (
            await db_session.execute(
                select(ProductSupplierMapping).where(ProductSupplierMapping.id == mapping_id)
            )
        ).scalars().all()
        assert remaining == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestBulk:
    async def test_bulk_stock_skips_unknown_ids(
        self, db_session, admin, make_supplier, make_supplier_product
    ):
        supplier = await make_supplier()
        a = await make_supplier_product(supplier)
        b = await make_supplier_product(supplier)

        result = await service.bulk_update_stock(db_session, admin, [
            StockLine(id=a.id, stock_quantity=3),
            StockLine(id=b.id, stock_quantity=0),
            StockLine(id="missing", stock_quantity=7),
        ])

        assert result == {"updated_count": 2, "total_requested": 3}
        assert a.stock_quantity == 3
        assert b.stock_quantity == 0

    async def test_bulk_prices(self, db_session, admin, make_supplier, make_supplier_product):
        supplier = await make_supplier()
        a = await make_supplier_product(supplier, supplier_price=100)

        result = await service.bulk_update_prices(db_session, admin, [
            PriceLine(id=a.id, supplier_price=150, retail_price=300),
        ])

        assert result == {"updated_count": 1, "total_requested": 1}
        assert a.supplier_price == 150
        assert a.retail_price == 300

    async def test_bulk_mark_synced_clears_errors(
        self, db_session, admin, make_supplier, make_supplier_product
    ):
        supplier = await make_supplier()
        a = await make_supplier_product(supplier, sync_status="error", sync_errors="HTTP 500")
        b = await make_supplier_product(supplier, sync_status="pending")

        result = await service.bulk_mark_sync_status(db_session, admin, [a.id, b.id], "synced")

        assert result == {"updated_count": 2, "total_requested": 2}
        assert a.sync_status == "synced"
        assert a.sync_errors is None
        assert b.sync_status == "synced"
