"""Pydantic schemas for product ↔ supplier mappings."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from dropship.models.product_supplier_mapping import MarkupType

_MARKUP_TYPES = {m.value for m in MarkupType}


def _check_markup(v: str | None) -> str | None:
    if v is not None and v not in _MARKUP_TYPES:
        raise ValueError("markup_type must be 'percentage' or 'fixed'")
    return v


class MappingCreate(BaseModel):
    product_id: str
    supplier_product_id: str
    is_primary: bool = False
    is_active: bool = True
    priority_order: int = 1
    markup_type: str = MarkupType.PERCENTAGE.value
    markup_percentage: Decimal = Field(Decimal("0"), ge=0)
    fixed_markup: int = Field(0, ge=0)
    auto_update_price: bool = True
    auto_update_stock: bool = True
    auto_update_description: bool = False
    minimum_stock_threshold: int = Field(0, ge=0)

    @field_validator("markup_type")
    @classmethod
    def valid_markup(cls, v: str) -> str:
        return _check_markup(v)


class MappingUpdate(BaseModel):
    priority_order: int | None = None
    auto_update_price: bool | None = None
    auto_update_stock: bool | None = None
    auto_update_description: bool | None = None
    minimum_stock_threshold: int | None = Field(None, ge=0)


class MarkupUpdate(BaseModel):
    markup_type: str
    markup_percentage: Decimal | None = Field(None, ge=0)
    fixed_markup: int | None = Field(None, ge=0)

    @field_validator("markup_type")
    @classmethod
    def valid_markup(cls, v: str) -> str:
        return _check_markup(v)


class BulkMappingSettings(BaseModel):
    mapping_ids: list[str] = Field(..., min_length=1)
    auto_update_price: bool | None = None
    auto_update_stock: bool | None = None
    auto_update_description: bool | None = None
    minimum_stock_threshold: int | None = Field(None, ge=0)
    priority_order: int | None = None


class BulkMappingIds(BaseModel):
    mapping_ids: list[str] = Field(..., min_length=1)


class MappingOut(BaseModel):
    id: str
    product_id: str
    supplier_id: str
    supplier_product_id: str
    is_primary: bool
    is_active: bool
    priority_order: int
    markup_type: str
    markup_percentage: Decimal
    fixed_markup: int
    auto_update_price: bool
    auto_update_stock: bool
    auto_update_description: bool
    minimum_stock_threshold: int
    last_price_update: datetime | None = None
    last_stock_update: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MappingHealth(BaseModel):
    mapping_id: str
    is_active: bool
    is_primary: bool
    supplier_product_exists: bool
    supplier_product_active: bool
    stock_available: bool
    recent_price_update: bool
    recent_stock_update: bool
    healthy: bool
