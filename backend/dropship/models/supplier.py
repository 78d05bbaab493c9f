"""Supplier — vendor of record for dropshipped goods.

Owns its catalog (SupplierProduct), its connection configs
(SupplierIntegration, at most one active) and the dropship orders routed
to it.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dropship.database import Base
from dropship.utils.clock import utcnow


class SupplierStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING_APPROVAL = "pending_approval"


class Supplier(Base):
    __tablename__ = "suppliers"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_name: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(30))
    status: Mapped[str] = mapped_column(
        String(30), default=SupplierStatus.ACTIVE.value, nullable=False, index=True
    )
    # api | webhook | email | ftp | manual
    integration_type: Mapped[str] = mapped_column(String(20), default="manual")
    auto_fulfill: Mapped[bool] = mapped_column(Boolean, default=False)
    stock_sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    price_sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    def is_active(self) -> bool:
        return self.status == SupplierStatus.ACTIVE.value
