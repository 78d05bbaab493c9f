from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dropship.config import settings
from dropship.middleware.exceptions import register_exception_handlers
from dropship.routers import (
    dropship_orders,
    health,
    product_mappings,
    supplier_integrations,
    supplier_products,
    suppliers,
)
from dropship.services.scheduler import lifespan

app = FastAPI(
    title="Dropship Admin",
    description="Supplier, catalog sync and dropship fulfilment administration",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(dropship_orders.router, prefix="/api/dropship-orders", tags=["dropship-orders"])
app.include_router(suppliers.router, prefix="/api/suppliers", tags=["suppliers"])
app.include_router(
    supplier_integrations.router, prefix="/api/supplier-integrations", tags=["supplier-integrations"]
)
app.include_router(supplier_products.router, prefix="/api/supplier-products", tags=["supplier-products"])
app.include_router(product_mappings.router, prefix="/api/product-mappings", tags=["product-mappings"])
