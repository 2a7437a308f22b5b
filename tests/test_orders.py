# tests/test_orders.py
import pytest
from httpx import AsyncClient

from tests.helpers import SHIPPING, auth, read_points, read_stock, token_for


async def _place_order(client: AsyncClient, headers: dict, product, *, quantity: int = 1, **extra) -> dict:
    resp = await client.post(
        "/api/v1/cart/items", json={"product_id": str(product.id), "quantity": quantity}, headers=headers
    )
    assert resp.status_code == 201, resp.text
    resp = await client.post(
        "/api/v1/checkout/confirm", json={"shipping_address": SHIPPING, **extra}, headers=headers
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["order"]


async def _set_status(client: AsyncClient, admin_token: str, order_id: str, status: str, note: str | None = None):
    return await client.patch(
        f"/api/v1/admin/orders/{order_id}/status",
        json={"status": status, "note": note},
        headers=auth(admin_token),
    )


@pytest.mark.asyncio
async def test_status_history_is_appended(client: AsyncClient, make_product, user_token, admin_token):
    product = make_product(price=1_000_000)
    order = await _place_order(client, auth(user_token), product)

    for status in ("confirmed", "shipping"):
        resp = await _set_status(client, admin_token, order["id"], status)
        assert resp.status_code == 200, resp.text

    body = resp.json()
    assert body["status"] == "shipping"
    history = body["status_history"]
    assert [h["status"] for h in history] == ["pending", "confirmed", "shipping"]
    assert [h["seq"] for h in history] == [1, 2, 3]


@pytest.mark.asyncio
async def test_delivery_awards_points_once(client: AsyncClient, make_product, normal_user, user_token, admin_token):
    product = make_product(price=1_000_000)
    order = await _place_order(client, auth(user_token), product)
    assert order["total_amount"] == 1_100_000

    resp = await _set_status(client, admin_token, order["id"], "delivered", "Left with reception")
    assert resp.status_code == 200, resp.text
    assert resp.json()["points_awarded"] is True
    assert resp.json()["status_history"][-1]["note"] == "Left with reception"
    assert read_points(normal_user.id) == 11_000

    again = await _set_status(client, admin_token, order["id"], "cancelled")
    assert again.status_code == 409
    assert read_points(normal_user.id) == 11_000

    ledger = await client.get("/api/v1/me/points", headers=auth(user_token))
    assert ledger.status_code == 200
    assert ledger.json()["total_points"] == 11_000
    assert [e["entry_type"] for e in ledger.json()["items"]] == ["earn"]


@pytest.mark.asyncio
async def test_cancel_restores_stock_and_points(client: AsyncClient, make_product, rich_user, rich_token, admin_token):
    product = make_product(price=2_000_000, stock=3)
    order = await _place_order(client, auth(rich_token), product, quantity=2, redeem_points=300_000)
    assert order["loyalty_amount"] == 300_000
    assert read_stock(product.id) == 1
    assert read_points(rich_user.id) == 700_000

    resp = await _set_status(client, admin_token, order["id"], "cancelled", "Customer request")
    assert resp.status_code == 200, resp.text
    assert resp.json()["cancelled_at"] is not None
    assert read_stock(product.id) == 3
    assert read_points(rich_user.id) == 1_000_000

    ledger = await client.get("/api/v1/me/points", headers=auth(rich_token))
    assert sorted(e["entry_type"] for e in ledger.json()["items"]) == ["redeem", "refund"]


@pytest.mark.asyncio
async def test_same_status_is_rejected(client: AsyncClient, make_product, user_token, admin_token):
    order = await _place_order(client, auth(user_token), make_product())
    resp = await _set_status(client, admin_token, order["id"], "pending")
    assert resp.status_code == 409
    assert resp.json()["code"] == "conflict"


@pytest.mark.asyncio
async def test_customers_cannot_change_status(client: AsyncClient, make_product, user_token):
    order = await _place_order(client, auth(user_token), make_product())
    resp = await _set_status(client, user_token, order["id"], "confirmed")
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_my_orders_and_visibility(
    client: AsyncClient, make_product, user_token, rich_user, admin_token
):
    product = make_product(stock=10)
    mine = await _place_order(client, auth(user_token), product)
    await _place_order(client, auth(user_token), product)

    listing = await client.get("/api/v1/orders/my", params={"limit": 1}, headers=auth(user_token))
    assert listing.status_code == 200
    body = listing.json()
    assert body["total"] == 2
    assert body["pages"] == 2
    assert body["items"][0]["item_count"] == 1

    other_token = token_for(rich_user, ["users:me"])
    hidden = await client.get(f"/api/v1/orders/{mine['id']}", headers=auth(other_token))
    assert hidden.status_code == 404
    anonymous = await client.get(f"/api/v1/orders/{mine['id']}")
    assert anonymous.status_code == 404

    own = await client.get(f"/api/v1/orders/{mine['id']}", headers=auth(user_token))
    assert own.status_code == 200
    admin_view = await client.get(f"/api/v1/admin/orders/{mine['id']}", headers=auth(admin_token))
    assert admin_view.status_code == 200


@pytest.mark.asyncio
async def test_admin_lists_orders_by_status(client: AsyncClient, make_product, user_token, admin_token):
    product = make_product(stock=10)
    first = await _place_order(client, auth(user_token), product)
    await _place_order(client, auth(user_token), product)
    await _set_status(client, admin_token, first["id"], "cancelled")

    cancelled = await client.get(
        "/api/v1/admin/orders", params={"status": "cancelled"}, headers=auth(admin_token)
    )
    assert cancelled.status_code == 200, cancelled.text
    assert cancelled.json()["total"] == 1
    assert cancelled.json()["items"][0]["id"] == first["id"]

    everything = await client.get(
        "/api/v1/admin/orders", params={"date_from": "2000-01-01"}, headers=auth(admin_token)
    )
    assert everything.json()["total"] == 2
    none = await client.get("/api/v1/admin/orders", params={"date_to": "2000-01-01"}, headers=auth(admin_token))
    assert none.json()["total"] == 0
