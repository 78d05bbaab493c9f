"""Product — the internal catalog item sold to customers.

Owned by the storefront domain; only the fields the dropship workflows
read or write are modelled here.  `price`, `supplier_cost` and `quantity`
are kept in sync from the primary supplier mapping.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dropship.database import Base
from dropship.utils.clock import utcnow


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    # Minor currency units
    price: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    supplier_cost: Mapped[int | None] = mapped_column(Integer)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_dropship: Mapped[bool] = mapped_column(Boolean, default=False)
    # Mirrors the supplier_id of the product's primary mapping
    primary_supplier_id: Mapped[str | None] = mapped_column(String(36), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
