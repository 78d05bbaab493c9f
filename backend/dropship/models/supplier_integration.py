"""SupplierIntegration — how we talk to a supplier's system.

Lifecycle:
  inactive (created) → active (enable) → error (too many failed syncs)
                     ↘ inactive (disable)        ↘ active (reset / success)

At most one integration per supplier is active; `services.integrations`
enforces that on every write.  Enabling clears the failure streak
(`consecutive_failures`, `last_error`); `sync_statistics` is kept across
disable/enable so the success rate covers the whole history.
"""

import enum
import uuid
from datetime import datetime, timedelta

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dropship.database import Base
from dropship.utils.clock import utcnow


class IntegrationType(str, enum.Enum):
    API = "api"
    WEBHOOK = "webhook"
    EMAIL = "email"
    FTP = "ftp"
    MANUAL = "manual"


class IntegrationStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"
    MAINTENANCE = "maintenance"


AUTOMATED_TYPES = {IntegrationType.API.value, IntegrationType.WEBHOOK.value, IntegrationType.FTP.value}
# Channels we dial to pull a catalog; webhook and FTP feeds are pushed to us
PULL_TYPES = {IntegrationType.API.value}


def empty_sync_statistics() -> dict:
    return {
        "total_syncs": 0,
        "successful_syncs": 0,
        "failed_syncs": 0,
        "products_synced": 0,
        "last_sync_duration_ms": 0,
    }


class SupplierIntegration(Base):
    __tablename__ = "supplier_integrations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    supplier_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("suppliers.id"), nullable=False, index=True
    )
    integration_type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=IntegrationStatus.INACTIVE.value, nullable=False
    )

    # Opaque per-type settings: api_endpoint, webhook_url, ftp_host, email_address…
    configuration: Mapped[dict] = mapped_column(JSON, default=dict)
    # Credentials: api_key, username, password…  Never serialised.
    authentication: Mapped[dict] = mapped_column(JSON, default=dict)
    webhook_events: Mapped[list] = mapped_column(JSON, default=list)

    # ── Sync policy ────────────────────────────────────────────
    sync_frequency_minutes: Mapped[int] = mapped_column(Integer, default=60)
    auto_retry_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    max_retry_attempts: Mapped[int] = mapped_column(Integer, default=3)

    # ── Health ─────────────────────────────────────────────────
    consecutive_failures: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_successful_sync: Mapped[datetime | None] = mapped_column(DateTime)
    last_failed_sync: Mapped[datetime | None] = mapped_column(DateTime)
    last_error: Mapped[str | None] = mapped_column(Text)
    sync_statistics: Mapped[dict] = mapped_column(JSON, default=empty_sync_statistics)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    def is_automated(self) -> bool:
        """API, webhook and FTP channels sync unattended; email/manual don't."""
        return self.integration_type in AUTOMATED_TYPES

    def pulls_catalog(self) -> bool:
        return self.integration_type in PULL_TYPES

    def needs_sync(self, now: datetime | None = None) -> bool:
        if not (self.is_automated() and self.is_active):
            return False
        if self.last_successful_sync is None:
            return True
        now = now or utcnow()
        return now - self.last_successful_sync >= timedelta(minutes=self.sync_frequency_minutes)

    def can_retry(self) -> bool:
        return bool(self.auto_retry_enabled) and self.consecutive_failures < self.max_retry_attempts

    def success_rate(self) -> float:
        """Percentage of recorded syncs that succeeded (0 when none recorded)."""
        stats = self.sync_statistics or {}
        total = stats.get("total_syncs", 0)
        if not total:
            return 0.0
        return round(stats.get("successful_syncs", 0) / total * 100, 2)

    # ── Configuration accessors ────────────────────────────────

    def config_value(self, key: str, default=None):
        return (self.configuration or {}).get(key, default)

    @property
    def api_endpoint(self) -> str | None:
        return self.config_value("api_endpoint")

    @property
    def api_key(self) -> str | None:
        return (self.authentication or {}).get("api_key")
