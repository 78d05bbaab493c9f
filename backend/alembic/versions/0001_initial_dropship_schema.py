"""Initial dropship schema: storefront references, suppliers, catalog,
mappings, dropship orders and the activity log.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Storefront tables referenced by dropship ──────────────
    op.create_table(
        "products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("supplier_cost", sa.Integer()),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_dropship", sa.Boolean(), server_default=sa.false()),
        sa.Column("primary_supplier_id", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_products_primary_supplier_id", "products", ["primary_supplier_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("reference", sa.String(50), nullable=False, unique=True),
        sa.Column("customer_name", sa.String(255)),
        sa.Column("status", sa.String(30), server_default="pending"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "order_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id")),
        sa.Column("quantity", sa.Integer(), server_default="1"),
        sa.Column("unit_price", sa.Integer(), server_default="0"),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    # ── Suppliers ─────────────────────────────────────────────
    op.create_table(
        "suppliers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("company_name", sa.String(255)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(30)),
        sa.Column("status", sa.String(30), nullable=False, server_default="active"),
        sa.Column("integration_type", sa.String(20), server_default="manual"),
        sa.Column("auto_fulfill", sa.Boolean(), server_default=sa.false()),
        sa.Column("stock_sync_enabled", sa.Boolean(), server_default=sa.true()),
        sa.Column("price_sync_enabled", sa.Boolean(), server_default=sa.true()),
        sa.Column("last_sync_at", sa.DateTime()),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_suppliers_status", "suppliers", ["status"])

    op.create_table(
        "supplier_integrations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("supplier_id", sa.String(36), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("integration_type", sa.String(20), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="inactive"),
        sa.Column("configuration", sa.JSON()),
        sa.Column("authentication", sa.JSON()),
        sa.Column("webhook_events", sa.JSON()),
        sa.Column("sync_frequency_minutes", sa.Integer(), server_default="60"),
        sa.Column("auto_retry_enabled", sa.Boolean(), server_default=sa.true()),
        sa.Column("max_retry_attempts", sa.Integer(), server_default="3"),
        sa.Column("consecutive_failures", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_successful_sync", sa.DateTime()),
        sa.Column("last_failed_sync", sa.DateTime()),
        sa.Column("last_error", sa.Text()),
        sa.Column("sync_statistics", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_supplier_integrations_supplier_id", "supplier_integrations", ["supplier_id"])
    # One active integration per supplier
    op.create_index(
        "uq_supplier_integrations_one_active",
        "supplier_integrations",
        ["supplier_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    # ── Catalog ───────────────────────────────────────────────
    op.create_table(
        "supplier_products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("supplier_id", sa.String(36), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id")),
        sa.Column("supplier_sku", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("supplier_price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("retail_price", sa.Integer()),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("minimum_order_quantity", sa.Integer(), server_default="1"),
        sa.Column("weight_grams", sa.Integer()),
        sa.Column("attributes", sa.JSON()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("is_mapped", sa.Boolean(), server_default=sa.false()),
        sa.Column("sync_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("sync_errors", sa.Text()),
        sa.Column("last_synced_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("supplier_id", "supplier_sku", name="uq_supplier_products_sku"),
    )
    op.create_index("ix_supplier_products_supplier_id", "supplier_products", ["supplier_id"])
    op.create_index("ix_supplier_products_product_id", "supplier_products", ["product_id"])

    op.create_table(
        "product_supplier_mappings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("supplier_id", sa.String(36), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column(
            "supplier_product_id", sa.String(36),
            sa.ForeignKey("supplier_products.id"), nullable=False,
        ),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("priority_order", sa.Integer(), server_default="1"),
        sa.Column("markup_type", sa.String(20), nullable=False, server_default="percentage"),
        sa.Column("markup_percentage", sa.Numeric(8, 2), server_default="0"),
        sa.Column("fixed_markup", sa.Integer(), server_default="0"),
        sa.Column("auto_update_price", sa.Boolean(), server_default=sa.true()),
        sa.Column("auto_update_stock", sa.Boolean(), server_default=sa.true()),
        sa.Column("auto_update_description", sa.Boolean(), server_default=sa.false()),
        sa.Column("minimum_stock_threshold", sa.Integer(), server_default="0"),
        sa.Column("last_price_update", sa.DateTime()),
        sa.Column("last_stock_update", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_product_supplier_mappings_product_id", "product_supplier_mappings", ["product_id"])
    op.create_index("ix_product_supplier_mappings_supplier_id", "product_supplier_mappings", ["supplier_id"])
    op.create_index(
        "ix_product_supplier_mappings_supplier_product_id",
        "product_supplier_mappings",
        ["supplier_product_id"],
    )
    # One primary mapping per product
    op.create_index(
        "uq_product_supplier_mappings_one_primary",
        "product_supplier_mappings",
        ["product_id"],
        unique=True,
        postgresql_where=sa.text("is_primary"),
    )

    # ── Fulfilment ────────────────────────────────────────────
    op.create_table(
        "dropship_orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("supplier_id", sa.String(36), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        sa.Column("total_cost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_retail", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("profit_margin", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("shipping_address", sa.JSON()),
        sa.Column("supplier_order_id", sa.String(100)),
        sa.Column("supplier_response", sa.JSON()),
        sa.Column("supplier_notes", sa.Text()),
        sa.Column("integration_type_used", sa.String(20)),
        sa.Column("tracking_number", sa.String(100)),
        sa.Column("carrier", sa.String(100)),
        sa.Column("estimated_delivery", sa.Date()),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("auto_retry_enabled", sa.Boolean(), server_default=sa.true()),
        sa.Column("last_retry_at", sa.DateTime()),
        sa.Column("notes", sa.Text()),
        sa.Column("cancellation_reason", sa.Text()),
        sa.Column("sent_to_supplier_at", sa.DateTime()),
        sa.Column("confirmed_at", sa.DateTime()),
        sa.Column("shipped_at", sa.DateTime()),
        sa.Column("delivered_at", sa.DateTime()),
        sa.Column("cancelled_at", sa.DateTime()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_dropship_orders_order_id", "dropship_orders", ["order_id"])
    op.create_index("ix_dropship_orders_supplier_id", "dropship_orders", ["supplier_id"])
    op.create_index("ix_dropship_orders_status", "dropship_orders", ["status"])
    op.create_index("ix_dropship_orders_created_at", "dropship_orders", ["created_at"])

    op.create_table(
        "dropship_order_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "dropship_order_id", sa.String(36),
            sa.ForeignKey("dropship_orders.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("order_item_id", sa.String(36), sa.ForeignKey("order_items.id")),
        sa.Column(
            "supplier_product_id", sa.String(36),
            sa.ForeignKey("supplier_products.id", ondelete="SET NULL"),
        ),
        sa.Column("supplier_sku", sa.String(100), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("supplier_price", sa.Integer(), nullable=False),
        sa.Column("retail_price", sa.Integer(), nullable=False),
        sa.Column("profit_per_item", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(30), server_default="pending"),
        sa.Column("product_details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_dropship_order_items_dropship_order_id", "dropship_order_items", ["dropship_order_id"]
    )
    op.create_index(
        "ix_dropship_order_items_supplier_product_id", "dropship_order_items", ["supplier_product_id"]
    )

    # ── Audit ─────────────────────────────────────────────────
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("actor_id", sa.String(36), nullable=False),
        sa.Column("actor_name", sa.String(200), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_actor_id", "activity_logs", ["actor_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_type", "activity_logs", ["entity_type"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("dropship_order_items")
    op.drop_table("dropship_orders")
    op.drop_table("product_supplier_mappings")
    op.drop_table("supplier_products")
    op.drop_table("supplier_integrations")
    op.drop_table("suppliers")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("products")
