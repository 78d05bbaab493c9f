"""DropshipOrder — the slice of a customer Order fulfilled by one supplier.

Lifecycle:
  pending → sent_to_supplier → confirmed → shipped → delivered
  any non-delivered state → cancelled
  pending / sent_to_supplier → pending again via retry (bounded)

`delivered` and `cancelled` are terminal.  The transition rules live in
`services.dropship_orders`; this module only holds the data and the
read-only predicates.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dropship.database import Base
from dropship.utils.clock import utcnow


class DropshipStatus(str, enum.Enum):
    PENDING = "pending"
    SENT_TO_SUPPLIER = "sent_to_supplier"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = {DropshipStatus.DELIVERED.value, DropshipStatus.CANCELLED.value}


class DropshipOrder(Base):
    __tablename__ = "dropship_orders"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id"), nullable=False, index=True
    )
    supplier_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("suppliers.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(30), default=DropshipStatus.PENDING.value, nullable=False, index=True
    )

    # ── Money (minor currency units) ───────────────────────────
    total_cost: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_retail: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    profit_margin: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # {name, line1, line2, city, region, postal_code, country, phone}
    shipping_address: Mapped[dict] = mapped_column(JSON, default=dict)

    # ── Supplier side ──────────────────────────────────────────
    supplier_order_id: Mapped[str | None] = mapped_column(String(100))
    supplier_response: Mapped[dict | None] = mapped_column(JSON)
    supplier_notes: Mapped[str | None] = mapped_column(Text)
    integration_type_used: Mapped[str | None] = mapped_column(String(20))
    tracking_number: Mapped[str | None] = mapped_column(String(100))
    carrier: Mapped[str | None] = mapped_column(String(100))
    estimated_delivery: Mapped[date | None] = mapped_column(Date)

    # ── Retry ──────────────────────────────────────────────────
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    auto_retry_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    last_retry_at: Mapped[datetime | None] = mapped_column(DateTime)

    notes: Mapped[str | None] = mapped_column(Text)
    cancellation_reason: Mapped[str | None] = mapped_column(Text)

    # ── Transition timestamps ──────────────────────────────────
    sent_to_supplier_at: Mapped[datetime | None] = mapped_column(DateTime)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    items = relationship(
        "DropshipOrderItem",
        back_populates="dropship_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_overdue(self, today: date | None = None) -> bool:
        if self.estimated_delivery is None or self.is_terminal:
            return False
        today = today or utcnow().date()
        return self.estimated_delivery < today


class DropshipOrderItem(Base):
    __tablename__ = "dropship_order_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    dropship_order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("dropship_orders.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    order_item_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("order_items.id"))
    # Nulled when a catalog entry is removed after its orders finished;
    # supplier_sku and product_details keep the history.
    supplier_product_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("supplier_products.id", ondelete="SET NULL"), index=True
    )
    supplier_sku: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    supplier_price: Mapped[int] = mapped_column(Integer, nullable=False)
    retail_price: Mapped[int] = mapped_column(Integer, nullable=False)
    profit_per_item: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(30), default=DropshipStatus.PENDING.value)
    # Snapshot of the product at order time (name, options, image…)
    product_details: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    dropship_order = relationship("DropshipOrder", back_populates="items")
