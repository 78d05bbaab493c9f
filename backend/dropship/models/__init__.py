"""Aggregate model imports for Alembic auto-detection."""

# Storefront tables referenced by dropship
from dropship.models.product import Product  # noqa: F401
from dropship.models.order import Order, OrderItem  # noqa: F401

# Suppliers and their catalog
from dropship.models.supplier import Supplier, SupplierStatus  # noqa: F401
from dropship.models.supplier_integration import (  # noqa: F401
    IntegrationStatus,
    IntegrationType,
    SupplierIntegration,
)
from dropship.models.supplier_product import SupplierProduct, SyncStatus  # noqa: F401
from dropship.models.product_supplier_mapping import MarkupType, ProductSupplierMapping  # noqa: F401

# Fulfilment
from dropship.models.dropship_order import (  # noqa: F401
    DropshipOrder,
    DropshipOrderItem,
    DropshipStatus,
)

# Audit
from dropship.models.activity_log import ActivityLog  # noqa: F401
