"""Async HTTP client for the storefront API.

The guest token the API hands out on the first cart call is kept on the client
and sent back on every later request, so a script behaves like a browser tab.
"""

from __future__ import annotations

from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from storefront.core.logging import get_logger

logger = get_logger(__name__)

GUEST_TOKEN_HEADER = "x-guest-token"
IDEMPOTENCY_HEADER = "Idempotency-Key"


def http_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type(httpx.TransportError),
    )


class ApiError(Exception):
    """Non-2xx answer from the API, carrying the machine-readable ``code``."""

    def __init__(self, status_code: int, code: str, detail: str, payload: dict | None = None) -> None:
        super().__init__(f"{status_code} {code}: {detail}")
        self.status_code = status_code
        self.code = code
        self.detail = detail
        self.payload = payload or {}

    @property
    def transient(self) -> bool:
        return self.status_code >= 500

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        detail = body.get("detail")
        if detail is None:
            detail = response.reason_phrase or "Request failed"
        elif not isinstance(detail, str):
            detail = str(detail)
        code = body.get("code") or ("validation_error" if response.status_code == 422 else "http_error")
        return cls(response.status_code, code, detail, body)


class StorefrontClient:
    def __init__(
        self,
        base_url: str,
        *,
        access_token: str | None = None,
        guest_token: str | None = None,
        api_prefix: str = "/api/v1",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.access_token = access_token
        self.guest_token = guest_token
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + api_prefix,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "StorefrontClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.guest_token:
            headers[GUEST_TOKEN_HEADER] = self.guest_token
        if extra:
            headers.update(extra)
        return headers

    def _capture_guest_token(self, response: httpx.Response) -> None:
        token = response.headers.get(GUEST_TOKEN_HEADER)
        if token and token != self.guest_token:
            self.guest_token = token
            logger.debug("Guest token issued by API")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        response = await self._http.request(
            method,
            path,
            json=json,
            params={k: v for k, v in (params or {}).items() if v is not None} or None,
            headers=self._headers(headers),
        )
        self._capture_guest_token(response)
        if response.status_code >= 400:
            raise ApiError.from_response(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @http_retry()
    async def _read(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", path, params=params)

    # --- Cart ---
    async def get_cart(self) -> dict:
        return await self._read("/cart")

    async def cart_count(self) -> int:
        data = await self._read("/cart/count")
        return int(data["count"])

    async def add_item(self, product_id: str, quantity: int = 1, variant_sku: str | None = None) -> dict:
        body = {"product_id": str(product_id), "quantity": quantity, "variant_sku": variant_sku}
        return await self._request("POST", "/cart/items", json=body)

    async def bulk_add(self, items: list[dict]) -> dict:
        return await self._request("POST", "/cart/items/bulk", json={"items": items})

    async def update_item(self, item_id: str, quantity: int) -> dict:
        return await self._request("PATCH", f"/cart/items/{item_id}", json={"quantity": quantity})

    async def remove_item(self, item_id: str) -> dict:
        return await self._request("DELETE", f"/cart/items/{item_id}")

    async def clear_cart(self) -> dict:
        return await self._request("DELETE", "/cart")

    async def merge_guest_cart(self, guest_token: str | None = None) -> dict:
        token = guest_token or self.guest_token
        cart = await self._request("POST", "/cart/merge", json={"guest_token": token})
        self.guest_token = None
        return cart

    # --- Checkout ---
    async def preview(self, coupon_code: str | None = None, redeem_points: int = 0) -> dict:
        body = {"coupon_code": coupon_code, "redeem_points": redeem_points}
        return await self._request("POST", "/checkout/preview", json=body)

    async def confirm(self, payload: dict, *, idempotency_key: str | None = None) -> dict:
        headers = {IDEMPOTENCY_HEADER: idempotency_key} if idempotency_key else None
        return await self._request("POST", "/checkout/confirm", json=payload, headers=headers)

    # --- Orders and payments ---
    async def my_orders(self, page: int = 1, limit: int = 10) -> dict:
        return await self._read("/orders/my", params={"page": page, "limit": limit})

    async def get_order(self, order_id: str) -> dict:
        return await self._read(f"/orders/{order_id}")

    async def vnpay_payment_url(self, order_id: str) -> str:
        data = await self._request("POST", f"/payments/vnpay/{order_id}/url")
        return data["payment_url"]

    # --- Account ---
    async def me(self) -> dict:
        return await self._read("/me")

    async def points(self, page: int = 1, limit: int = 20) -> dict:
        return await self._read("/me/points", params={"page": page, "limit": limit})

    async def addresses(self) -> list[dict]:
        return await self._read("/me/addresses")

    async def add_address(self, address: dict) -> dict:
        return await self._request("POST", "/me/addresses", json=address)
