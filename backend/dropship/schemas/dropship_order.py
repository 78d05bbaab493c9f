"""Pydantic schemas for dropship orders and their workflow actions."""

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from dropship.models.dropship_order import DropshipStatus

_STATUSES = {s.value for s in DropshipStatus}


class DropshipOrderItemCreate(BaseModel):
    supplier_product_id: str
    order_item_id: str | None = None
    quantity: int = Field(1, ge=1)
    # Default to the supplier product's current prices when omitted
    supplier_price: int | None = Field(None, ge=0)
    retail_price: int | None = Field(None, ge=0)
    product_details: dict | None = None


class DropshipOrderCreate(BaseModel):
    order_id: str
    supplier_id: str
    shipping_address: dict
    items: list[DropshipOrderItemCreate] = Field(..., min_length=1)
    notes: str | None = None
    estimated_delivery: date | None = None
    auto_retry_enabled: bool = True


class DropshipOrderUpdate(BaseModel):
    """Editable non-status fields.  Status only moves through the actions."""
    shipping_address: dict | None = None
    notes: str | None = None
    supplier_notes: str | None = None
    estimated_delivery: date | None = None
    auto_retry_enabled: bool | None = None


class ConfirmRequest(BaseModel):
    supplier_order_id: str = Field(..., min_length=1)
    supplier_response: dict | None = None
    estimated_delivery: date | None = None


class ShipRequest(BaseModel):
    tracking_number: str = Field(..., min_length=1)
    carrier: str | None = None
    estimated_delivery: date | None = None


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class StatusChangeRequest(BaseModel):
    """Generic transition; context keys depend on the target status.

    confirmed → supplier_order_id, supplier_response
    shipped   → tracking_number, carrier, estimated_delivery
    cancelled → reason (falls back to notes)
    """
    status: str
    notes: str | None = None
    supplier_order_id: str | None = None
    supplier_response: dict | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    estimated_delivery: date | None = None
    reason: str | None = None

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in _STATUSES:
            raise ValueError(f"status must be one of: {', '.join(sorted(_STATUSES))}")
        return v


class BulkStatusRequest(StatusChangeRequest):
    dropship_order_ids: list[str] = Field(..., min_length=1)


class DropshipOrderItemOut(BaseModel):
    id: str
    order_item_id: str | None = None
    supplier_product_id: str | None = None
    supplier_sku: str
    quantity: int
    supplier_price: int
    retail_price: int
    profit_per_item: int
    status: str
    product_details: dict | None = None

    model_config = {"from_attributes": True}


class DropshipOrderOut(BaseModel):
    id: str
    order_id: str
    supplier_id: str
    status: str
    total_cost: int
    total_retail: int
    profit_margin: int
    shipping_address: dict
    supplier_order_id: str | None = None
    supplier_response: dict | None = None
    supplier_notes: str | None = None
    integration_type_used: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    estimated_delivery: date | None = None
    retry_count: int
    auto_retry_enabled: bool
    last_retry_at: datetime | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    sent_to_supplier_at: datetime | None = None
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None
    items: list[DropshipOrderItemOut] = []

    model_config = {"from_attributes": True}


class DropshipStats(BaseModel):
    total_orders: int
    pending_orders: int
    active_orders: int
    completed_orders: int
    cancelled_orders: int
    overdue_orders: int
    total_profit: int
    by_status: dict[str, int]
    by_supplier: list[dict]
