"""HTTP client for supplier systems.

Only API integrations are actually dialled; the other channels are checked
for the configuration they need (webhook URL, FTP host, mailbox) since
there is nothing to connect to synchronously.

The client never touches the database.  Callers decide what a result means
for the integration's health (`services.integrations`).
"""

import logging
import time
from dataclasses import dataclass

import httpx

from dropship.config import settings
from dropship.models.supplier_integration import IntegrationType, SupplierIntegration

logger = logging.getLogger(__name__)


class SupplierClientError(Exception):
    """Supplier endpoint unreachable or returned an unusable response."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def _whole_number(value) -> int | None:
    """Whole-number field from a catalog row; fractional values are rejected."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value} is not a whole number")
        return int(value)
    if isinstance(value, (int, str)):
        return int(value)
    raise TypeError(f"unsupported value {value!r}")


@dataclass
class ConnectionTestResult:
    success: bool
    message: str
    response_time_ms: float | None = None
    status_code: int | None = None
    error_details: str | None = None


@dataclass
class CatalogEntry:
    sku: str
    price: int | None = None
    stock: int | None = None
    name: str | None = None
    description: str | None = None
    discontinued: bool = False


# Configuration each non-API channel needs before it can be used
_REQUIRED_CONFIG = {
    IntegrationType.WEBHOOK.value: "webhook_url",
    IntegrationType.FTP.value: "ftp_host",
    IntegrationType.EMAIL.value: "email_address",
}


class SupplierAPIClient:
    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout or settings.supplier_http_timeout_seconds
        self._transport = transport

    def _client(self, integration: SupplierIntegration) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if integration.api_key:
            headers["Authorization"] = f"Bearer {integration.api_key}"
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers=headers,
            transport=self._transport,
        )

    async def test_connection(self, integration: SupplierIntegration) -> ConnectionTestResult:
        if integration.integration_type == IntegrationType.MANUAL.value:
            return ConnectionTestResult(success=True, message="Manual integration has no endpoint to test")

        if integration.integration_type in _REQUIRED_CONFIG:
            key = _REQUIRED_CONFIG[integration.integration_type]
            if integration.config_value(key):
                return ConnectionTestResult(success=True, message=f"{key} configured")
            return ConnectionTestResult(
                success=False,
                message=f"Missing configuration: {key}",
                error_details=f"{integration.integration_type} integrations require {key}",
            )

        endpoint = integration.api_endpoint
        if not endpoint:
            return ConnectionTestResult(
                success=False,
                message="Missing configuration: api_endpoint",
            )

        started = time.perf_counter()
        try:
            async with self._client(integration) as client:
                resp = await client.get(endpoint)
        except httpx.HTTPError as e:
            logger.warning(
                "Supplier connection test failed",
                extra={"integration_id": integration.id, "error": str(e)},
            )
            return ConnectionTestResult(
                success=False,
                message="Connection failed",
                response_time_ms=round((time.perf_counter() - started) * 1000, 1),
                error_details=str(e),
            )

        elapsed = round((time.perf_counter() - started) * 1000, 1)
        if resp.is_success:
            return ConnectionTestResult(
                success=True,
                message="Connection successful",
                response_time_ms=elapsed,
                status_code=resp.status_code,
            )
        return ConnectionTestResult(
            success=False,
            message=f"Supplier returned HTTP {resp.status_code}",
            response_time_ms=elapsed,
            status_code=resp.status_code,
            error_details=resp.text[:500],
        )

    async def fetch_catalog(self, integration: SupplierIntegration) -> list[CatalogEntry]:
        """GET `<api_endpoint>/<products_path>` and parse price/stock lines.

        Accepts either a bare JSON list or `{"products": [...]}`.
        """
        endpoint = integration.api_endpoint
        if not endpoint:
            raise SupplierClientError("Missing configuration: api_endpoint")

        path = integration.config_value("products_path", "products")
        url = f"{endpoint.rstrip('/')}/{path.lstrip('/')}"

        try:
            async with self._client(integration) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPStatusError as e:
            raise SupplierClientError(
                f"Supplier returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise SupplierClientError(f"Catalog request failed: {e}") from e
        except ValueError as e:
            raise SupplierClientError("Catalog response is not valid JSON") from e

        rows = payload.get("products", []) if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            raise SupplierClientError("Catalog response has no product list")

        entries = []
        for row in rows:
            if not isinstance(row, dict) or not row.get("sku"):
                continue
            try:
                entries.append(CatalogEntry(
                    sku=str(row["sku"]),
                    price=_whole_number(row.get("price")),
                    stock=_whole_number(row.get("stock")),
                    name=row.get("name"),
                    description=row.get("description"),
                    discontinued=bool(row.get("discontinued", False)),
                ))
            except (TypeError, ValueError):
                logger.warning(
                    "Skipping malformed catalog row",
                    extra={"integration_id": integration.id, "sku": row.get("sku")},
                )
        return entries


def get_supplier_client() -> SupplierAPIClient:
    """FastAPI dependency; tests override it with a mock transport."""
    return SupplierAPIClient()
