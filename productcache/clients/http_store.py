"""HTTP client for the product REST API used as the cache's backing store."""

import logging

import httpx

from productcache.clients.resilience import (
    CircuitBreaker,
    SchemaChangeError,
    TransientBackingStoreError,
    backing_store_breaker,
    classify_response,
    resilient_request,
    validate_envelope,
    validate_product_schema,
)
from productcache.models.product import NewProduct, Product, ProductSummary

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8080/api"


def parse_product(data: dict) -> Product:
    """Parse an API product payload; ids arrive as integers, prices as strings."""
    validate_product_schema(data)
    try:
        return Product.model_validate({**data, "id": str(data["id"])})
    except ValueError as exc:
        raise SchemaChangeError(f"Unparseable product payload: {exc}") from exc


def _wire_id(item_id: str) -> int | str:
    return int(item_id) if item_id.isdigit() else item_id


class HttpBackingStore:
    """Async ``BackingStore`` over the product REST API.

    Every call goes through the shared circuit breaker and retries
    transient failures.

    Args:
        base_url: API root, e.g. ``http://localhost:8080/api``.
        token: Optional bearer token sent as ``Authorization``.
        timeout: Per-request timeout in seconds.
        breaker: Circuit breaker guarding the API.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: str | None = None,
        *,
        timeout: float = 30.0,
        breaker: CircuitBreaker = backing_store_breaker,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.breaker = breaker

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self, method: str, path: str, *, missing_ok: bool = False, json: dict | None = None
    ) -> dict | None:
        return await self.breaker.call_async(
            self._send, method, path, missing_ok=missing_ok, json=json
        )

    @resilient_request
    async def _send(
        self, method: str, path: str, *, missing_ok: bool = False, json: dict | None = None
    ) -> dict | None:
        """Send one request and return the validated envelope (None on a tolerated 404)."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers=self._headers(),
                    json=json,
                )
        except httpx.TransportError as exc:
            raise TransientBackingStoreError(f"Backing store unreachable: {exc}") from exc

        if missing_ok and response.status_code == 404:
            return None
        classify_response(response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise SchemaChangeError(
                f"Invalid response format (HTTP {response.status_code})"
            ) from exc
        return validate_envelope(payload)

    async def list_all(self) -> list[ProductSummary]:
        payload = await self._request("GET", "/products/all")
        data = (payload or {}).get("data") or []
        if not isinstance(data, list):
            raise SchemaChangeError("Expected a list of products from /products/all")
        return [ProductSummary(id=str(d["id"]), name=d["name"]) for d in map(validate_product_schema, data)]

    async def get_by_id(self, item_id: str) -> Product | None:
        payload = await self._request("GET", f"/products/getbyid/{item_id}", missing_ok=True)
        if payload is None or not payload.get("data"):
            logger.info("Product %s not found in backing store", item_id)
            return None
        return parse_product(payload["data"])

    async def create(self, item: NewProduct) -> Product:
        body = {"name": item.name, "price": str(item.price)}
        payload = await self._request("POST", "/products/create", json=body)
        data = (payload or {}).get("data")
        if not data:
            raise SchemaChangeError("Create response did not include the new product")
        created = parse_product(data)
        return created.model_copy(
            update={
                "category": item.category,
                "stock": item.stock,
                "size_bytes": item.size_bytes,
            }
        )

    async def update(self, item: Product) -> Product | None:
        body = {"id": _wire_id(item.id), "name": item.name, "price": str(item.price)}
        payload = await self._request("PUT", "/products/update", json=body, missing_ok=True)
        if payload is None:
            return None
        data = payload.get("data")
        if not data:
            return item
        return parse_product(data).model_copy(
            update={"category": item.category, "stock": item.stock, "size_bytes": item.size_bytes}
        )
