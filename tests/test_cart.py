# tests/test_cart.py
import uuid

import pytest
from httpx import AsyncClient

from tests.helpers import auth, guest_headers


@pytest.mark.asyncio
async def test_guest_cart_gets_token_and_keeps_it(client: AsyncClient, make_product):
    product = make_product(price=250_000, stock=5)

    first = await client.post("/api/v1/cart/items", json={"product_id": str(product.id), "quantity": 2})
    assert first.status_code == 201, first.text
    token = first.headers["x-guest-token"]
    assert token
    body = first.json()
    assert body["count"] == 2
    assert body["subtotal"] == 500_000
    assert body["items"][0]["name_snapshot"] == product.name

    again = await client.get("/api/v1/cart", headers={"x-guest-token": token})
    assert again.status_code == 200
    assert again.headers["x-guest-token"] == token
    assert again.json()["id"] == body["id"]


@pytest.mark.asyncio
async def test_adding_same_product_sums_quantity(client: AsyncClient, make_product):
    product = make_product(stock=10)
    headers = guest_headers()
    await client.post("/api/v1/cart/items", json={"product_id": str(product.id)}, headers=headers)
    resp = await client.post(
        "/api/v1/cart/items", json={"product_id": str(product.id), "quantity": 3}, headers=headers
    )
    assert resp.status_code == 201
    items = resp.json()["items"]
    assert len(items) == 1
    assert items[0]["quantity"] == 4


@pytest.mark.asyncio
async def test_max_per_order_caps_with_warning(client: AsyncClient, make_product):
    product = make_product(stock=10, max_per_order=2)
    resp = await client.post(
        "/api/v1/cart/items", json={"product_id": str(product.id), "quantity": 3}, headers=guest_headers()
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["items"][0]["quantity"] == 2
    assert body["warnings"][0]["type"] == "max_per_order"
    assert body["warnings"][0]["allowed_qty"] == 2


@pytest.mark.asyncio
async def test_out_of_stock_is_reported_with_available(client: AsyncClient, make_product):
    product = make_product(stock=1)
    resp = await client.post(
        "/api/v1/cart/items", json={"product_id": str(product.id), "quantity": 2}, headers=guest_headers()
    )
    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "out_of_stock"
    assert body["available"] == 1


@pytest.mark.asyncio
async def test_inactive_and_unknown_products(client: AsyncClient, make_product):
    inactive = make_product(is_active=False)
    headers = guest_headers()

    resp = await client.post("/api/v1/cart/items", json={"product_id": str(inactive.id)}, headers=headers)
    assert resp.status_code == 409
    assert resp.json()["code"] == "product_unavailable"

    resp = await client.post("/api/v1/cart/items", json={"product_id": str(uuid.uuid4())}, headers=headers)
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


@pytest.mark.asyncio
async def test_quantity_below_one_rejected_on_add(client: AsyncClient, make_product):
    product = make_product()
    resp = await client.post(
        "/api/v1/cart/items", json={"product_id": str(product.id), "quantity": 0}, headers=guest_headers()
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_variant_uses_its_own_price_and_name(client: AsyncClient, make_product, make_variant):
    product = make_product(name="Laptop Pro 14", price=20_000_000)
    make_variant(product, "LP14-32-SLV", price=25_000_000, stock=3, name="32GB / Silver")

    resp = await client.post(
        "/api/v1/cart/items",
        json={"product_id": str(product.id), "variant_sku": "lp14-32-slv"},
        headers=guest_headers(),
    )
    assert resp.status_code == 201, resp.text
    item = resp.json()["items"][0]
    assert item["variant_sku"] == "LP14-32-SLV"
    assert item["price_at_add"] == 25_000_000
    assert item["name_snapshot"] == "Laptop Pro 14 - 32GB / Silver"


@pytest.mark.asyncio
async def test_update_and_remove_lines(client: AsyncClient, make_product):
    first = make_product(name="Mouse", price=300_000)
    second = make_product(name="Keyboard", price=700_000)
    headers = guest_headers()
    await client.post("/api/v1/cart/items", json={"product_id": str(first.id)}, headers=headers)
    resp = await client.post("/api/v1/cart/items", json={"product_id": str(second.id)}, headers=headers)
    items = {item["name_snapshot"]: item for item in resp.json()["items"]}

    resp = await client.patch(
        f"/api/v1/cart/items/{items['Mouse']['id']}", json={"quantity": 3}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["subtotal"] == 3 * 300_000 + 700_000

    resp = await client.put(
        f"/api/v1/cart/items/{items['Keyboard']['id']}", json={"quantity": 0}, headers=headers
    )
    assert resp.status_code == 200
    assert [i["name_snapshot"] for i in resp.json()["items"]] == ["Mouse"]

    resp = await client.delete(f"/api/v1/cart/items/{items['Mouse']['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["items"] == []

    resp = await client.delete(f"/api/v1/cart/items/{items['Mouse']['id']}", headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_bulk_add_reports_each_item(client: AsyncClient, make_product):
    ok = make_product(name="Cable", price=100_000, stock=10)
    scarce = make_product(name="GPU", price=9_000_000, stock=1)
    headers = guest_headers()

    resp = await client.post(
        "/api/v1/cart/items/bulk",
        json={
            "items": [
                {"product_id": str(ok.id), "quantity": 2},
                {"product_id": str(uuid.uuid4()), "quantity": 1},
                {"product_id": str(scarce.id), "quantity": 5},
            ]
        },
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    results = body["results"]
    assert len(results) == 3
    assert [r["ok"] for r in results] == [True, False, False]
    assert results[0]["added_qty"] == 2
    assert results[1]["reason"] == "not_found"
    assert results[2]["reason"] == "out_of_stock"
    assert body["cart"]["count"] == 2
    assert [i["name_snapshot"] for i in body["cart"]["items"]] == ["Cable"]


@pytest.mark.asyncio
async def test_count_and_clear(client: AsyncClient, make_product):
    product = make_product()
    headers = guest_headers()
    assert (await client.get("/api/v1/cart/count", headers=headers)).json() == {"count": 0}

    await client.post("/api/v1/cart/items", json={"product_id": str(product.id), "quantity": 4}, headers=headers)
    assert (await client.get("/api/v1/cart/count", headers=headers)).json() == {"count": 4}

    resp = await client.delete("/api/v1/cart", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["count"] == 0


@pytest.mark.asyncio
async def test_user_cart_has_no_guest_token(client: AsyncClient, make_product, user_token, normal_user):
    product = make_product()
    resp = await client.post(
        "/api/v1/cart/items", json={"product_id": str(product.id)}, headers=auth(user_token)
    )
    assert resp.status_code == 201, resp.text
    assert "x-guest-token" not in resp.headers
    assert resp.json()["user_id"] == str(normal_user.id)


@pytest.mark.asyncio
async def test_merge_guest_cart_caps_at_stock(client: AsyncClient, make_product, user_token):
    shared = make_product(name="Headphones", price=1_500_000, stock=3)
    guest_only = make_product(name="Charger", price=400_000, stock=5)
    guest = guest_headers()

    await client.post("/api/v1/cart/items", json={"product_id": str(shared.id), "quantity": 2}, headers=guest)
    await client.post("/api/v1/cart/items", json={"product_id": str(guest_only.id)}, headers=guest)
    await client.post(
        "/api/v1/cart/items", json={"product_id": str(shared.id), "quantity": 2}, headers=auth(user_token)
    )

    resp = await client.post(
        "/api/v1/cart/merge",
        json={"guest_token": guest["x-guest-token"]},
        headers=auth(user_token),
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    quantities = {i["name_snapshot"]: i["quantity"] for i in body["items"]}
    assert quantities == {"Headphones": 3, "Charger": 1}
    assert body["warnings"][0]["type"] == "stock_cap"

    # The guest cart is gone after the merge
    leftover = await client.get("/api/v1/cart/count", headers=guest)
    assert leftover.json() == {"count": 0}


@pytest.mark.asyncio
async def test_merge_requires_sign_in(client: AsyncClient):
    resp = await client.post("/api/v1/cart/merge", json={"guest_token": "abc"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_price_at_add_survives_catalog_price_change(client: AsyncClient, make_product, db_session):
    product = make_product(name="Headset", price=100_000, stock=10)
    headers = guest_headers()
    first = await client.post("/api/v1/cart/items", json={"product_id": str(product.id)}, headers=headers)
    assert first.json()["items"][0]["price_at_add"] == 100_000

    product.price = 999_000
    db_session.commit()

    cart = await client.get("/api/v1/cart", headers=headers)
    assert cart.json()["items"][0]["price_at_add"] == 100_000

    again = await client.post(
        "/api/v1/cart/items", json={"product_id": str(product.id), "quantity": 2}, headers=headers
    )
    assert again.status_code == 201
    items = again.json()["items"]
    assert len(items) == 1
    assert items[0]["quantity"] == 3
    assert items[0]["price_at_add"] == 100_000
    assert again.json()["subtotal"] == 300_000
