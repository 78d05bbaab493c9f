"""SupplierProduct — one entry in a supplier's catalog.

Prices are the supplier's cost in minor currency units.  `product_id`
stays null until the entry is mapped onto an internal Product; from then
on `is_mapped` is true and at least one ProductSupplierMapping row links
the two.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dropship.database import Base
from dropship.utils.clock import utcnow


class SyncStatus(str, enum.Enum):
    PENDING = "pending"
    SYNCED = "synced"
    OUT_OF_SYNC = "out_of_sync"
    ERROR = "error"
    DISCONTINUED = "discontinued"


class SupplierProduct(Base):
    __tablename__ = "supplier_products"
    __table_args__ = (
        UniqueConstraint("supplier_id", "supplier_sku", name="uq_supplier_products_sku"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    supplier_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("suppliers.id"), nullable=False, index=True
    )
    product_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("products.id"), index=True
    )
    supplier_sku: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    supplier_price: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    retail_price: Mapped[int | None] = mapped_column(Integer)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    minimum_order_quantity: Mapped[int] = mapped_column(Integer, default=1)
    weight_grams: Mapped[int | None] = mapped_column(Integer)
    attributes: Mapped[dict | None] = mapped_column(JSON)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_mapped: Mapped[bool] = mapped_column(Boolean, default=False)

    sync_status: Mapped[str] = mapped_column(
        String(20), default=SyncStatus.PENDING.value, nullable=False
    )
    sync_errors: Mapped[str | None] = mapped_column(Text)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    def can_order(self, quantity: int = 1) -> bool:
        return (
            bool(self.is_active)
            and self.sync_status != SyncStatus.DISCONTINUED.value
            and quantity >= (self.minimum_order_quantity or 1)
            and self.stock_quantity >= quantity
        )
