"""HTTP-level tests: auth, error envelope, and the main workflows end to end."""

import pytest


@pytest.mark.api
@pytest.mark.asyncio
class TestAuthAndErrors:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_missing_token(self, client):
        resp = await client.get("/api/dropship-orders")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "HTTP_401"

    async def test_operator_can_read_but_not_delete(
        self, client, operator_headers, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        order = await make_dropship_order(supplier, await make_supplier_product(supplier))

        listed = await client.get("/api/dropship-orders", headers=operator_headers)
        assert listed.status_code == 200
        assert listed.json()["total"] == 1

        resp = await client.delete(f"/api/dropship-orders/{order.id}", headers=operator_headers)
        assert resp.status_code == 403
        error = resp.json()["error"]
        assert error["code"] == "PERMISSION_DENIED"
        assert "dropship.delete" in error["message"]

    async def test_not_found_envelope(self, client, auth_headers):
        resp = await client.get("/api/dropship-orders/missing", headers=auth_headers)

        assert resp.status_code == 404
        body = resp.json()["error"]
        assert body["code"] == "RESOURCE_NOT_FOUND"
        assert body["details"]["entity_id"] == "missing"

    async def test_request_validation_envelope(self, client, auth_headers):
        resp = await client.post(
            "/api/supplier-integrations",
            json={"supplier_id": "x", "integration_type": "carrier-pigeon", "name": "Nope"},
            headers=auth_headers,
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.api
@pytest.mark.asyncio
class TestDropshipOrderEndpoints:
    async def test_full_lifecycle(
        self, client, auth_headers, make_supplier, make_supplier_product, make_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier, supplier_price=1000)
        order, order_item = await make_order(unit_price=2500)

        created = await client.post("/api/dropship-orders", json={
            "order_id": order.id,
            "supplier_id": supplier.id,
            "shipping_address": {"name": "Jane Buyer", "line1": "1 Main St"},
            "items": [{
                "supplier_product_id": sp.id,
                "order_item_id": order_item.id,
                "quantity": 2,
            }],
        }, headers=auth_headers)
        assert created.status_code == 201
        data = created.json()
        assert data["status"] == "pending"
        assert data["total_cost"] == 2000
        order_id = data["id"]

        resp = await client.post(f"/api/dropship-orders/{order_id}/send", headers=auth_headers)
        assert resp.json()["status"] == "sent_to_supplier"

        resp = await client.post(
            f"/api/dropship-orders/{order_id}/confirm",
            json={"supplier_order_id": "SUP-778"},
            headers=auth_headers,
        )
        assert resp.json()["status"] == "confirmed"
        assert resp.json()["supplier_order_id"] == "SUP-778"

        resp = await client.post(
            f"/api/dropship-orders/{order_id}/ship",
            json={"tracking_number": "1Z999", "carrier": "UPS"},
            headers=auth_headers,
        )
        assert resp.json()["status"] == "shipped"
        assert resp.json()["tracking_number"] == "1Z999"

        resp = await client.post(f"/api/dropship-orders/{order_id}/deliver", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["delivered_at"] is not None
        assert all(item["status"] == "delivered" for item in resp.json()["items"])

        resp = await client.post(
            f"/api/dropship-orders/{order_id}/cancel",
            json={"reason": "Too late"},
            headers=auth_headers,
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "INVALID_STATE"

    async def test_ship_requires_tracking_number(
        self, client, auth_headers, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        order = await make_dropship_order(supplier, await make_supplier_product(supplier))

        resp = await client.post(
            f"/api/dropship-orders/{order.id}/ship", json={}, headers=auth_headers
        )
        assert resp.status_code == 422

    async def test_retry_limit(
        self, client, auth_headers, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        order = await make_dropship_order(supplier, await make_supplier_product(supplier))

        for expected in (1, 2, 3):
            resp = await client.post(f"/api/dropship-orders/{order.id}/retry", headers=auth_headers)
            assert resp.status_code == 200
            assert resp.json()["retry_count"] == expected

        resp = await client.post(f"/api/dropship-orders/{order.id}/retry", headers=auth_headers)
        assert resp.status_code == 400
        body = resp.json()["error"]
        assert body["code"] == "RETRY_NOT_ALLOWED"
        assert body["details"]["retry_count"] == 3

    async def test_send_with_inactive_supplier(
        self, client, auth_headers, db_session, make_supplier, make_supplier_product,
        make_dropship_order,
    ):
        supplier = await make_supplier()
        order = await make_dropship_order(supplier, await make_supplier_product(supplier))
        supplier.status = "inactive"
        await db_session.flush()

        resp = await client.post(f"/api/dropship-orders/{order.id}/send", headers=auth_headers)

        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_FAILED"

    async def test_bulk_cancel(
        self, client, auth_headers, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier)
        first = await make_dropship_order(supplier, sp)
        second = await make_dropship_order(supplier, sp)

        resp = await client.post("/api/dropship-orders/bulk-status", json={
            "dropship_order_ids": [first.id, second.id, "missing"],
            "status": "cancelled",
            "reason": "Supplier out of stock",
        }, headers=auth_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] == 2
        assert body["failed"] == 1
        assert body["errors"][0].startswith("missing:")

    async def test_stats(
        self, client, auth_headers, make_supplier, make_supplier_product, make_dropship_order
    ):
        supplier = await make_supplier()
        await make_dropship_order(supplier, await make_supplier_product(supplier))

        resp = await client.get("/api/dropship-orders/stats", headers=auth_headers)

        assert resp.status_code == 200
        assert resp.json()["total_orders"] == 1
        assert resp.json()["pending_orders"] == 1


@pytest.mark.api
@pytest.mark.asyncio
class TestIntegrationEndpoints:
    async def _create(self, client, headers, supplier_id: str, name: str, **extra) -> dict:
        payload = {
            "supplier_id": supplier_id,
            "integration_type": "api",
            "name": name,
            "configuration": {"api_endpoint": "https://supplier.test/v1"},
            "authentication": {"api_key": "secret-key"},
        }
        payload.update(extra)
        resp = await client.post("/api/supplier-integrations", json=payload, headers=headers)
        assert resp.status_code == 201
        return resp.json()

    async def test_created_inactive_and_credentials_hidden(self, client, auth_headers, make_supplier):
        supplier = await make_supplier()

        data = await self._create(client, auth_headers, supplier.id, "Primary feed")

        assert data["is_active"] is False
        assert data["status"] == "inactive"
        assert "authentication" not in data

    async def test_detail_reports_derived_health(self, client, auth_headers, make_supplier):
        supplier = await make_supplier()
        created = await self._create(client, auth_headers, supplier.id, "Live feed", is_active=True)

        resp = await client.get(f"/api/supplier-integrations/{created['id']}", headers=auth_headers)

        assert resp.status_code == 200
        data = resp.json()
        assert data["is_automated"] is True
        assert data["needs_sync"] is True
        assert data["can_retry"] is True
        assert data["success_rate"] == 0.0
        # Active but never synced
        assert data["health_score"] == 70
        assert data["health_label"] == "Good"
        assert data["sync_statistics"]["total_syncs"] == 0

    async def test_only_one_active_per_supplier(self, client, auth_headers, make_supplier):
        supplier = await make_supplier()
        first = await self._create(client, auth_headers, supplier.id, "Old feed", is_active=True)
        second = await self._create(client, auth_headers, supplier.id, "New feed")

        resp = await client.post(
            f"/api/supplier-integrations/{second['id']}/enable", headers=auth_headers
        )
        assert resp.json()["is_active"] is True

        listed = await client.get(
            "/api/supplier-integrations",
            params={"supplier_id": supplier.id, "is_active": "true"},
            headers=auth_headers,
        )
        assert [i["id"] for i in listed.json()["items"]] == [second["id"]]

        old = await client.get(f"/api/supplier-integrations/{first['id']}", headers=auth_headers)
        assert old.json()["is_active"] is False

    async def test_connection_test_failure_counts(
        self, client, auth_headers, fake_supplier, make_supplier
    ):
        supplier = await make_supplier()
        integration = await self._create(client, auth_headers, supplier.id, "Feed", is_active=True)
        fake_supplier.status_code = 503

        resp = await client.post(
            f"/api/supplier-integrations/{integration['id']}/test", headers=auth_headers
        )
        assert resp.status_code == 200
        assert resp.json()["success"] is False
        assert resp.json()["status_code"] == 503

        health = await client.get(
            f"/api/supplier-integrations/{integration['id']}/health", headers=auth_headers
        )
        assert health.json()["consecutive_failures"] == 1
        assert health.json()["last_error"] == "Supplier returned HTTP 503"

    async def test_sync_now(
        self, client, auth_headers, fake_supplier, make_supplier, make_supplier_product
    ):
        supplier = await make_supplier()
        sp = await make_supplier_product(supplier, supplier_price=1000, stock_quantity=20)
        integration = await self._create(client, auth_headers, supplier.id, "Feed", is_active=True)
        fake_supplier.products = [
            {"sku": sp.supplier_sku, "price": 1250, "stock": 4},
            {"sku": "UNKNOWN", "price": 10},
        ]

        resp = await client.post(
            f"/api/supplier-integrations/{integration['id']}/sync", headers=auth_headers
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["products_processed"] == 2
        assert body["products_updated"] == 1
        assert body["products_missing"] == 1

        catalog = await client.get(f"/api/supplier-products/{sp.id}", headers=auth_headers)
        assert catalog.json()["supplier_price"] == 1250
        assert catalog.json()["stock_quantity"] == 4
        assert catalog.json()["sync_status"] == "synced"

    async def test_supplier_connection_needs_active_integration(
        self, client, auth_headers, make_supplier
    ):
        supplier = await make_supplier()

        resp = await client.post(
            f"/api/suppliers/{supplier.id}/test-connection", headers=auth_headers
        )
        assert resp.status_code == 422


@pytest.mark.api
@pytest.mark.asyncio
class TestMappingEndpoints:
    async def test_make_primary_and_promotion_on_delete(
        self, client, auth_headers, make_supplier, make_product, make_supplier_product
    ):
        product = await make_product()
        ids = []
        for _ in range(2):
            sp = await make_supplier_product(await make_supplier())
            resp = await client.post("/api/product-mappings", json={
                "product_id": product.id,
                "supplier_product_id": sp.id,
                "markup_percentage": "40",
            }, headers=auth_headers)
            assert resp.status_code == 201
            ids.append(resp.json()["id"])
        first_id, second_id = ids

        first = await client.get(f"/api/product-mappings/{first_id}", headers=auth_headers)
        assert first.json()["is_primary"] is True

        resp = await client.post(
            f"/api/product-mappings/{second_id}/make-primary", headers=auth_headers
        )
        assert resp.json()["is_primary"] is True
        first = await client.get(f"/api/product-mappings/{first_id}", headers=auth_headers)
        assert first.json()["is_primary"] is False

        resp = await client.delete(f"/api/product-mappings/{second_id}", headers=auth_headers)
        assert resp.status_code == 204

        first = await client.get(f"/api/product-mappings/{first_id}", headers=auth_headers)
        assert first.json()["is_primary"] is True

    async def test_map_supplier_product_to_new_product(
        self, client, auth_headers, make_supplier, make_supplier_product
    ):
        sp = await make_supplier_product(await make_supplier(), supplier_price=800)

        resp = await client.post(
            f"/api/supplier-products/{sp.id}/map",
            json={"create_new_product": True, "markup_type": "fixed", "fixed_markup": 200},
            headers=auth_headers,
        )

        assert resp.status_code == 201
        assert resp.json()["is_primary"] is True
        assert resp.json()["supplier_product_id"] == sp.id

        catalog = await client.get(f"/api/supplier-products/{sp.id}", headers=auth_headers)
        assert catalog.json()["is_mapped"] is True
        assert catalog.json()["retail_price"] == 1000

    async def test_bulk_status_on_catalog_requires_bulk_permission(
        self, client, operator_headers, make_supplier, make_supplier_product
    ):
        sp = await make_supplier_product(await make_supplier())

        resp = await client.post("/api/supplier-products/bulk-status", json={
            "supplier_product_ids": [sp.id], "sync_status": "synced",
        }, headers=operator_headers)

        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "PERMISSION_DENIED"
