"""Pydantic schemas for suppliers."""

from datetime import datetime

from pydantic import BaseModel, field_validator

from dropship.models.supplier import SupplierStatus
from dropship.models.supplier_integration import IntegrationType

_STATUSES = {s.value for s in SupplierStatus}
_TYPES = {t.value for t in IntegrationType}


def _check_type(v: str | None) -> str | None:
    if v is not None and v not in _TYPES:
        raise ValueError(f"integration_type must be one of: {', '.join(sorted(_TYPES))}")
    return v


class SupplierCreate(BaseModel):
    name: str
    company_name: str | None = None
    email: str | None = None
    phone: str | None = None
    status: str = SupplierStatus.ACTIVE.value
    integration_type: str = IntegrationType.MANUAL.value
    auto_fulfill: bool = False
    stock_sync_enabled: bool = True
    price_sync_enabled: bool = True
    notes: str | None = None

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in _STATUSES:
            raise ValueError(f"status must be one of: {', '.join(sorted(_STATUSES))}")
        return v

    @field_validator("integration_type")
    @classmethod
    def valid_type(cls, v: str) -> str:
        return _check_type(v)


class SupplierUpdate(BaseModel):
    name: str | None = None
    company_name: str | None = None
    email: str | None = None
    phone: str | None = None
    integration_type: str | None = None
    auto_fulfill: bool | None = None
    stock_sync_enabled: bool | None = None
    price_sync_enabled: bool | None = None
    notes: str | None = None

    @field_validator("integration_type")
    @classmethod
    def valid_type(cls, v: str | None) -> str | None:
        return _check_type(v)


class SupplierOut(BaseModel):
    id: str
    name: str
    company_name: str | None = None
    email: str | None = None
    phone: str | None = None
    status: str
    integration_type: str
    auto_fulfill: bool
    stock_sync_enabled: bool
    price_sync_enabled: bool
    last_sync_at: datetime | None = None
    notes: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SupplierStats(BaseModel):
    supplier_id: str
    total_products: int
    active_products: int
    mapped_products: int
    synced_products: int
    out_of_stock_products: int
    sync_rate: float
    total_dropship_orders: int
    pending_dropship_orders: int
    delivered_dropship_orders: int
    fulfilment_success_rate: float
    active_integration_id: str | None = None
