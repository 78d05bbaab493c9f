"""Pytest configuration and fixtures for dropship tests.

Each test gets a fresh in-memory SQLite database (aiosqlite) wrapped in an
outer transaction that is rolled back afterwards.  Savepoints work the same
way they do on Postgres, so the bulk endpoints can be exercised for real.

Supplier HTTP traffic never leaves the process: `fake_supplier` serves a
catalog through `httpx.MockTransport`.
"""

import itertools
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dropship.auth.deps import Actor
from dropship.auth.jwt import create_access_token
from dropship.auth.permissions import resolve_permissions
from dropship.database import Base, get_db
from dropship.main import app
from dropship.models import (
    Order,
    OrderItem,
    Product,
    Supplier,
    SupplierIntegration,
    SupplierProduct,
    SupplierStatus,
)
from dropship.schemas.dropship_order import DropshipOrderCreate
from dropship.schemas.mapping import MappingCreate
from dropship.services import dropship_orders as dropship_service
from dropship.services import mappings as mapping_service
from dropship.services.supplier_client import SupplierAPIClient, get_supplier_client

_seq = itertools.count(1)


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """In-memory database with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINT / ROLLBACK TO work
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with session_factory() as session:
        await session.begin()

        yield session

        await session.rollback()


# ── Fake supplier endpoint ───────────────────────────────────────

class FakeSupplierAPI:
    """Stand-in for a supplier's HTTP API.

    `products` is served from `/products`; any other path answers the
    connection test.  Set `status_code` to simulate an outage.
    """

    def __init__(self):
        self.products: list[dict] = []
        self.status_code = 200
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "unavailable"})
        if request.url.path.endswith("/products"):
            return httpx.Response(200, json={"products": self.products})
        return httpx.Response(200, json={"status": "ok"})


@pytest.fixture
def fake_supplier() -> FakeSupplierAPI:
    return FakeSupplierAPI()


@pytest.fixture
def supplier_api(fake_supplier: FakeSupplierAPI) -> SupplierAPIClient:
    return SupplierAPIClient(timeout=2.0, transport=httpx.MockTransport(fake_supplier.handler))


@pytest_asyncio.fixture
async def client(db_session, supplier_api) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database and supplier dependencies."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_supplier_client] = lambda: supplier_api

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Actors and tokens ────────────────────────────────────────────

@pytest.fixture
def admin() -> Actor:
    return Actor(
        id="user-admin",
        name="Test Admin",
        role="administrator",
        permissions=frozenset(resolve_permissions("administrator")),
    )


@pytest.fixture
def auth_headers() -> dict:
    """Authorization headers for an administrator."""
    token = create_access_token(
        user_id="user-admin",
        role="administrator",
        permissions=["*"],
        name="Test Admin",
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def operator_headers() -> dict:
    """Authorization headers for an operator (read + basic workflow only)."""
    token = create_access_token(
        user_id="user-operator",
        role="operator",
        permissions=resolve_permissions("operator"),
        name="Test Operator",
    )
    return {"Authorization": f"Bearer {token}"}


# ── Test Data Factories ──────────────────────────────────────────

@pytest.fixture
def make_supplier(db_session: AsyncSession):
    async def _make(**overrides) -> Supplier:
        fields = {
            "name": f"Supplier {next(_seq)}",
            "status": SupplierStatus.ACTIVE.value,
            "integration_type": "manual",
        }
        fields.update(overrides)
        supplier = Supplier(**fields)
        db_session.add(supplier)
        await db_session.flush()
        return supplier

    return _make


@pytest.fixture
def make_product(db_session: AsyncSession):
    async def _make(**overrides) -> Product:
        fields = {"name": f"Product {next(_seq)}", "price": 0, "quantity": 0}
        fields.update(overrides)
        product = Product(**fields)
        db_session.add(product)
        await db_session.flush()
        return product

    return _make


@pytest.fixture
def make_supplier_product(db_session: AsyncSession):
    async def _make(supplier: Supplier, **overrides) -> SupplierProduct:
        n = next(_seq)
        fields = {
            "supplier_id": supplier.id,
            "supplier_sku": f"SKU-{n}",
            "name": f"Catalog item {n}",
            "supplier_price": 1000,
            "stock_quantity": 20,
        }
        fields.update(overrides)
        supplier_product = SupplierProduct(**fields)
        db_session.add(supplier_product)
        await db_session.flush()
        return supplier_product

    return _make


@pytest.fixture
def make_mapping(db_session: AsyncSession, admin: Actor):
    async def _make(product: Product, supplier_product: SupplierProduct, **overrides):
        fields = {
            "product_id": product.id,
            "supplier_product_id": supplier_product.id,
            "markup_type": "percentage",
            "markup_percentage": 50,
        }
        fields.update(overrides)
        return await mapping_service.create_mapping(db_session, admin, MappingCreate(**fields))

    return _make


@pytest.fixture
def make_integration(db_session: AsyncSession):
    async def _make(supplier: Supplier, **overrides) -> SupplierIntegration:
        fields = {
            "supplier_id": supplier.id,
            "integration_type": "api",
            "name": f"Integration {next(_seq)}",
            "is_active": True,
            "status": "active",
            "configuration": {"api_endpoint": "https://supplier.test/v1"},
            "authentication": {"api_key": "secret-key"},
            "webhook_events": [],
            "sync_frequency_minutes": 60,
            "max_retry_attempts": 3,
            "consecutive_failures": 0,
        }
        fields.update(overrides)
        integration = SupplierIntegration(**fields)
        db_session.add(integration)
        await db_session.flush()
        return integration

    return _make


@pytest.fixture
def make_order(db_session: AsyncSession):
    async def _make(unit_price: int = 2500, quantity: int = 1) -> tuple[Order, OrderItem]:
        order = Order(reference=f"ORD-{next(_seq):05d}", customer_name="Jane Buyer")
        db_session.add(order)
        await db_session.flush()
        item = OrderItem(order_id=order.id, quantity=quantity, unit_price=unit_price)
        db_session.add(item)
        await db_session.flush()
        return order, item

    return _make


@pytest.fixture
def make_dropship_order(db_session: AsyncSession, admin: Actor, make_order):
    async def _make(supplier: Supplier, supplier_product: SupplierProduct, quantity: int = 2, **overrides):
        order, order_item = await make_order()
        fields = {
            "order_id": order.id,
            "supplier_id": supplier.id,
            "shipping_address": {"name": "Jane Buyer", "line1": "1 Main St", "country": "US"},
            "items": [{
                "supplier_product_id": supplier_product.id,
                "order_item_id": order_item.id,
                "quantity": quantity,
            }],
        }
        fields.update(overrides)
        return await dropship_service.create_dropship_order(
            db_session, admin, DropshipOrderCreate(**fields)
        )

    return _make


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
