"""Client-side cart state with optimistic updates.

Every mutation is recorded as a pending operation and applied to the local
cart right away. The server answer replaces the local cart; a failure puts
back the last cart the server confirmed and re-raises.
"""

from __future__ import annotations

import asyncio
import copy
import enum
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx

from storefront.client.api import ApiError, StorefrontClient
from storefront.core.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[["CartService"], None]


class SyncState(str, enum.Enum):
    confirmed = "confirmed"
    pending = "pending"
    reconciling = "reconciling"


@dataclass
class PendingOperation:
    kind: str
    payload: dict[str, Any]
    op_id: str = field(default_factory=lambda: uuid.uuid4().hex)


def _empty_cart() -> dict[str, Any]:
    return {"items": [], "subtotal": 0, "count": 0, "warnings": []}


def _recount(cart: dict[str, Any]) -> dict[str, Any]:
    items = cart.get("items", [])
    cart["count"] = sum(int(item.get("quantity", 0)) for item in items)
    cart["subtotal"] = sum(int(item.get("line_total", 0)) for item in items)
    return cart


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, ApiError) and exc.transient


class CartService:
    """Single holder of the cart a frontend renders."""

    def __init__(self, client: StorefrontClient) -> None:
        self._client = client
        self._confirmed: dict[str, Any] = _empty_cart()
        self._lock = asyncio.Lock()
        self._listeners: list[Listener] = []
        self.cart: dict[str, Any] = _empty_cart()
        self.state = SyncState.confirmed
        self.pending: list[PendingOperation] = []
        self.count = 0
        self.warnings: list[dict] = []
        self.last_error: Exception | None = None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _accept(self, server_cart: dict[str, Any]) -> None:
        self._confirmed = copy.deepcopy(server_cart)
        self.cart = copy.deepcopy(server_cart)
        self.count = int(server_cart.get("count", 0))
        self.warnings = list(server_cart.get("warnings") or [])

    async def load(self) -> dict[str, Any]:
        async with self._lock:
            self._accept(await self._client.get_cart())
            self.state = SyncState.confirmed
        self._notify()
        return self.cart

    async def _mutate(
        self,
        op: PendingOperation,
        speculate: Callable[[dict[str, Any]], dict[str, Any]],
        call: Callable[[], Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        async with self._lock:
            self.pending.append(op)
            self.state = SyncState.pending
            self.cart = _recount(speculate(copy.deepcopy(self.cart)))
            self.count = self.cart["count"]
            self._notify()
            try:
                server_cart = await call()
            except Exception as exc:
                self.last_error = exc
                self._reconcile(op)
                self.cart = copy.deepcopy(self._confirmed)
                self.count = int(self._confirmed.get("count", 0))
                logger.warning("Cart operation rolled back", extra={"kind": op.kind, "error": str(exc)})
                self._settle()
                raise
            self.last_error = None
            self._reconcile(op)
            self._accept(server_cart)
            self._settle()
        return self.cart

    def _reconcile(self, op: PendingOperation) -> None:
        """Listeners see ``reconciling`` before the local cart is replaced."""
        self.pending.remove(op)
        self.state = SyncState.reconciling
        self._notify()

    def _settle(self) -> None:
        self.state = SyncState.confirmed if not self.pending else SyncState.pending
        self._notify()

    async def add_item(
        self,
        product_id: str,
        quantity: int = 1,
        variant_sku: str | None = None,
        *,
        unit_price: int = 0,
        name: str | None = None,
    ) -> dict[str, Any]:
        op = PendingOperation("add", {"product_id": str(product_id), "quantity": quantity, "variant_sku": variant_sku})

        def speculate(cart: dict[str, Any]) -> dict[str, Any]:
            for item in cart["items"]:
                if str(item.get("product_id")) == str(product_id) and item.get("variant_sku") == variant_sku:
                    item["quantity"] += quantity
                    item["line_total"] = item["quantity"] * int(item.get("price_at_add", unit_price))
                    return cart
            cart["items"].append(
                {
                    "id": f"pending-{op.op_id}",
                    "product_id": str(product_id),
                    "variant_sku": variant_sku,
                    "name_snapshot": name or "",
                    "image_snapshot": None,
                    "quantity": quantity,
                    "price_at_add": unit_price,
                    "line_total": unit_price * quantity,
                }
            )
            return cart

        return await self._mutate(op, speculate, lambda: self._client.add_item(product_id, quantity, variant_sku))

    async def update_quantity(self, item_id: str, quantity: int) -> dict[str, Any]:
        op = PendingOperation("update", {"item_id": item_id, "quantity": quantity})

        def speculate(cart: dict[str, Any]) -> dict[str, Any]:
            if quantity < 1:
                cart["items"] = [item for item in cart["items"] if item["id"] != item_id]
                return cart
            for item in cart["items"]:
                if item["id"] == item_id:
                    item["quantity"] = quantity
                    item["line_total"] = quantity * int(item.get("price_at_add", 0))
            return cart

        return await self._mutate(op, speculate, lambda: self._client.update_item(item_id, quantity))

    async def remove_item(self, item_id: str) -> dict[str, Any]:
        op = PendingOperation("remove", {"item_id": item_id})

        def speculate(cart: dict[str, Any]) -> dict[str, Any]:
            cart["items"] = [item for item in cart["items"] if item["id"] != item_id]
            return cart

        return await self._mutate(op, speculate, lambda: self._client.remove_item(item_id))

    async def clear(self) -> dict[str, Any]:
        op = PendingOperation("clear", {})

        def speculate(cart: dict[str, Any]) -> dict[str, Any]:
            cart["items"] = []
            return cart

        return await self._mutate(op, speculate, self._client.clear_cart)

    async def bulk_add(self, items: list[dict]) -> list[dict]:
        """Partial failures come back as results; only a failed request rolls back."""
        op = PendingOperation("bulk", {"items": items})
        results: list[dict] = []

        async def call() -> dict[str, Any]:
            response = await self._client.bulk_add(items)
            results.extend(response["results"])
            cart = response["cart"]
            cart["warnings"] = response.get("warnings") or []
            return cart

        await self._mutate(op, lambda cart: cart, call)
        return results

    async def refresh_count(self) -> int:
        """Badge sync. Transient failures keep the last known count."""
        try:
            count = await self._client.cart_count()
        except Exception as exc:
            if not _is_transient(exc):
                raise
            logger.debug("Cart count refresh skipped", extra={"error": str(exc)})
            return self.count
        if self.state == SyncState.confirmed:
            self.count = count
            self._notify()
        return self.count
