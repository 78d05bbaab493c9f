"""ProductSupplierMapping — binds an internal Product to a supplier's SKU.

A product can be offered by several suppliers; exactly one mapping (or
none) is primary and `Product.primary_supplier_id` mirrors it.  Markup
rules on the mapping turn the supplier's cost into the selling price.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from dropship.database import Base
from dropship.utils.clock import utcnow


class MarkupType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ProductSupplierMapping(Base):
    __tablename__ = "product_supplier_mappings"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id"), nullable=False, index=True
    )
    supplier_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("suppliers.id"), nullable=False, index=True
    )
    supplier_product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("supplier_products.id"), nullable=False, index=True
    )

    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Lower value = preferred when promoting a new primary
    priority_order: Mapped[int] = mapped_column(Integer, default=1)

    # ── Markup ─────────────────────────────────────────────────
    markup_type: Mapped[str] = mapped_column(
        String(20), default=MarkupType.PERCENTAGE.value, nullable=False
    )
    markup_percentage: Mapped[Decimal] = mapped_column(Numeric(8, 2), default=Decimal("0"))
    fixed_markup: Mapped[int] = mapped_column(Integer, default=0)

    # ── Sync switches ──────────────────────────────────────────
    auto_update_price: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_update_stock: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_update_description: Mapped[bool] = mapped_column(Boolean, default=False)
    minimum_stock_threshold: Mapped[int] = mapped_column(Integer, default=0)

    last_price_update: Mapped[datetime | None] = mapped_column(DateTime)
    last_stock_update: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
