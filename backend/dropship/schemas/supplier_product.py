"""Pydantic schemas for supplier catalog entries."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator

from dropship.models.product_supplier_mapping import MarkupType
from dropship.models.supplier_product import SyncStatus

_SYNC_STATUSES = {s.value for s in SyncStatus}
_MARKUP_TYPES = {m.value for m in MarkupType}


class SupplierProductCreate(BaseModel):
    supplier_id: str
    supplier_sku: str
    name: str
    description: str | None = None
    supplier_price: int = Field(..., ge=0)
    retail_price: int | None = Field(None, ge=0)
    stock_quantity: int = Field(0, ge=0)
    minimum_order_quantity: int = Field(1, ge=1)
    weight_grams: int | None = None
    attributes: dict | None = None
    is_active: bool = True


class SupplierProductUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    supplier_price: int | None = Field(None, ge=0)
    retail_price: int | None = Field(None, ge=0)
    stock_quantity: int | None = Field(None, ge=0)
    minimum_order_quantity: int | None = Field(None, ge=1)
    weight_grams: int | None = None
    attributes: dict | None = None
    is_active: bool | None = None


class SupplierProductOut(BaseModel):
    id: str
    supplier_id: str
    product_id: str | None = None
    supplier_sku: str
    name: str
    description: str | None = None
    supplier_price: int
    retail_price: int | None = None
    stock_quantity: int
    minimum_order_quantity: int
    is_active: bool
    is_mapped: bool
    sync_status: str
    sync_errors: str | None = None
    last_synced_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MapToProductRequest(BaseModel):
    """Map onto an existing product, or create one from the catalog entry."""
    create_new_product: bool = False
    product_id: str | None = None
    markup_type: str = MarkupType.PERCENTAGE.value
    markup_percentage: Decimal = Field(Decimal("100.0"), ge=0)
    fixed_markup: int = Field(0, ge=0)
    priority_order: int = 1

    @field_validator("markup_type")
    @classmethod
    def valid_markup(cls, v: str) -> str:
        if v not in _MARKUP_TYPES:
            raise ValueError("markup_type must be 'percentage' or 'fixed'")
        return v

    @model_validator(mode="after")
    def target_required(self):
        if not self.create_new_product and not self.product_id:
            raise ValueError("product_id is required unless create_new_product is set")
        return self


class StockLine(BaseModel):
    id: str
    stock_quantity: int = Field(..., ge=0)


class PriceLine(BaseModel):
    id: str
    supplier_price: int = Field(..., ge=0)
    retail_price: int | None = Field(None, ge=0)


class BulkStockRequest(BaseModel):
    items: list[StockLine] = Field(..., min_length=1)


class BulkPriceRequest(BaseModel):
    items: list[PriceLine] = Field(..., min_length=1)


class BulkSyncStatusRequest(BaseModel):
    supplier_product_ids: list[str] = Field(..., min_length=1)
    sync_status: str

    @field_validator("sync_status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in _SYNC_STATUSES:
            raise ValueError(f"sync_status must be one of: {', '.join(sorted(_SYNC_STATUSES))}")
        return v
