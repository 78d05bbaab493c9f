"""Pydantic schemas for supplier integrations.

Credentials (`authentication`) are write-only: accepted on create/update,
never returned.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from dropship.models.supplier_integration import IntegrationType

_TYPES = {t.value for t in IntegrationType}


class IntegrationCreate(BaseModel):
    supplier_id: str
    integration_type: str
    name: str
    is_active: bool = False
    configuration: dict = {}
    authentication: dict = {}
    webhook_events: list[str] = []
    sync_frequency_minutes: int = Field(60, ge=1)
    auto_retry_enabled: bool = True
    max_retry_attempts: int = Field(3, ge=0)

    @field_validator("integration_type")
    @classmethod
    def valid_type(cls, v: str) -> str:
        if v not in _TYPES:
            raise ValueError(f"integration_type must be one of: {', '.join(sorted(_TYPES))}")
        return v


class IntegrationUpdate(BaseModel):
    name: str | None = None
    configuration: dict | None = None
    authentication: dict | None = None
    webhook_events: list[str] | None = None
    sync_frequency_minutes: int | None = Field(None, ge=1)
    auto_retry_enabled: bool | None = None
    max_retry_attempts: int | None = Field(None, ge=0)


class IntegrationRecord(BaseModel):
    """Stored columns only.  The model exposes the derived values as methods."""
    id: str
    supplier_id: str
    integration_type: str
    name: str
    is_active: bool
    status: str
    configuration: dict
    webhook_events: list[str]
    sync_frequency_minutes: int
    auto_retry_enabled: bool
    max_retry_attempts: int
    consecutive_failures: int
    last_successful_sync: datetime | None = None
    last_failed_sync: datetime | None = None
    last_error: str | None = None
    sync_statistics: dict
    created_at: datetime

    model_config = {"from_attributes": True}


class IntegrationOut(IntegrationRecord):
    is_automated: bool = False
    needs_sync: bool = False
    can_retry: bool = False
    success_rate: float = 0.0
    health_score: int = 0
    health_label: str = "Critical"


class IntegrationHealth(BaseModel):
    integration_id: str
    health_score: int
    health_label: str
    success_rate: float
    consecutive_failures: int
    last_successful_sync: datetime | None = None
    last_error: str | None = None
    needs_sync: bool
    can_retry: bool


class ConnectionTestOut(BaseModel):
    success: bool
    message: str
    response_time_ms: float | None = None
    status_code: int | None = None
    error_details: str | None = None


class SyncResultOut(BaseModel):
    integration_id: str
    products_processed: int
    products_updated: int
    products_missing: int
    duration_ms: int
    success: bool
    error: str | None = None
    errors: list[str] = []
