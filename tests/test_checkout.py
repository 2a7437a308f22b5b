# tests/test_checkout.py
import uuid
from urllib.parse import parse_qs, urlsplit

import pytest
from httpx import AsyncClient

from storefront.core.config import settings
from tests.helpers import (
    SHIPPING,
    auth,
    guest_headers,
    read_coupon_uses,
    read_points,
    read_stock,
)


async def _fill_cart(client: AsyncClient, headers: dict, product, quantity: int = 1) -> None:
    resp = await client.post(
        "/api/v1/cart/items",
        json={"product_id": str(product.id), "quantity": quantity},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text


@pytest.mark.asyncio
async def test_preview_matches_confirm_for_save5_scenario(
    client: AsyncClient, make_product, make_coupon, rich_user, rich_token
):
    product = make_product(name="Laptop Pro 14", price=10_000_000, stock=5)
    coupon = make_coupon(code="SAVE5", discount_percent=10)
    headers = auth(rich_token)
    await _fill_cart(client, headers, product)

    preview = await client.post(
        "/api/v1/checkout/preview",
        json={"coupon_code": "SAVE5", "redeem_points": 500_000},
        headers=headers,
    )
    assert preview.status_code == 200, preview.text
    body = preview.json()
    assert body["pricing"] == {
        "subtotal": 10_000_000,
        "tax": 1_000_000,
        "shipping": 0,
        "discount": 1_000_000,
        "loyalty_applied": 500_000,
        "total": 9_500_000,
    }
    assert body["coupon"] == {"code": "SAVE5", "discount_percent": 10}
    assert body["loyalty"] == {
        "total_points": 1_000_000,
        "max_allowed": 2_000_000,
        "applied_points": 500_000,
        "remaining_points": 500_000,
    }

    confirm = await client.post(
        "/api/v1/checkout/confirm",
        json={"coupon_code": "SAVE5", "redeem_points": 500_000, "shipping_address": SHIPPING},
        headers=headers,
    )
    assert confirm.status_code == 201, confirm.text
    order = confirm.json()["order"]
    assert order["total_amount"] == body["pricing"]["total"]
    assert order["tax_amount"] == 1_000_000
    assert order["discount_amount"] == 1_000_000
    assert order["loyalty_amount"] == 500_000
    assert order["status"] == "pending"
    assert order["payment_status"] == "unpaid"
    assert [h["status"] for h in order["status_history"]] == ["pending"]
    assert confirm.json()["payment_url"] is None

    assert read_points(rich_user.id) == 500_000
    assert read_coupon_uses(coupon.id) == 1
    assert read_stock(product.id) == 4
    count = await client.get("/api/v1/cart/count", headers=headers)
    assert count.json() == {"count": 0}


@pytest.mark.asyncio
async def test_preview_is_repeatable_and_does_not_consume(client: AsyncClient, make_product, make_coupon):
    product = make_product(price=300_000, stock=5)
    coupon = make_coupon(code="SAVE5", discount_percent=10, usage_limit=1)
    headers = guest_headers()
    await _fill_cart(client, headers, product)

    payload = {"coupon_code": "save5", "redeem_points": 0}
    first = await client.post("/api/v1/checkout/preview", json=payload, headers=headers)
    second = await client.post("/api/v1/checkout/preview", json=payload, headers=headers)
    assert first.status_code == 200, first.text
    assert first.json() == second.json()
    # 300,000 + 30,000 tax + 30,000 shipping - 30,000 discount
    assert first.json()["pricing"]["total"] == 330_000
    assert read_coupon_uses(coupon.id) == 0


@pytest.mark.asyncio
async def test_guest_cannot_redeem_points(client: AsyncClient, make_product):
    product = make_product(price=1_000_000)
    headers = guest_headers()
    await _fill_cart(client, headers, product)
    resp = await client.post("/api/v1/checkout/preview", json={"redeem_points": 100_000}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["pricing"]["loyalty_applied"] == 0
    assert resp.json()["loyalty"]["total_points"] == 0


@pytest.mark.asyncio
async def test_empty_cart(client: AsyncClient):
    headers = guest_headers()
    preview = await client.post("/api/v1/checkout/preview", json={}, headers=headers)
    assert preview.status_code == 400
    assert preview.json()["code"] == "cart_empty"

    confirm = await client.post(
        "/api/v1/checkout/confirm",
        json={"email": "buyer@storefront.vn", "shipping_address": SHIPPING},
        headers=headers,
    )
    assert confirm.status_code == 400
    assert confirm.json()["code"] == "cart_empty"


@pytest.mark.asyncio
async def test_invalid_coupon_in_preview(client: AsyncClient, make_product):
    product = make_product()
    headers = guest_headers()
    await _fill_cart(client, headers, product)
    resp = await client.post("/api/v1/checkout/preview", json={"coupon_code": "NOPE1"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_coupon"
    assert resp.json()["reason"] == "not_found"


@pytest.mark.asyncio
async def test_guest_checkout_requires_email_and_address(client: AsyncClient, make_product):
    product = make_product()
    headers = guest_headers()
    await _fill_cart(client, headers, product)

    no_email = await client.post("/api/v1/checkout/confirm", json={"shipping_address": SHIPPING}, headers=headers)
    assert no_email.status_code == 422
    assert no_email.json()["code"] == "validation_error"

    no_address = await client.post(
        "/api/v1/checkout/confirm", json={"email": "buyer@storefront.vn"}, headers=headers
    )
    assert no_address.status_code == 422
    assert no_address.json()["code"] == "address_required"

    saved_address = await client.post(
        "/api/v1/checkout/confirm",
        json={"email": "buyer@storefront.vn", "address_id": str(uuid.uuid4())},
        headers=headers,
    )
    assert saved_address.status_code == 422
    assert saved_address.json()["code"] == "address_required"


@pytest.mark.asyncio
async def test_guest_order_is_linked_to_account_and_readable(client: AsyncClient, make_product):
    product = make_product(price=800_000)
    headers = guest_headers()
    await _fill_cart(client, headers, product, quantity=2)

    resp = await client.post(
        "/api/v1/checkout/confirm",
        json={"email": "Buyer@Storefront.vn", "shipping_address": SHIPPING, "notes": "Call before delivery"},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    order = resp.json()["order"]
    assert order["guest_email"] == "buyer@storefront.vn"
    assert order["user_id"] is not None
    assert order["shipping_address"]["recipient"] == SHIPPING["recipient"]
    assert order["lines"][0]["quantity"] == 2

    public = await client.get(f"/api/v1/orders/{order['id']}")
    assert public.status_code == 200
    assert public.json()["order_number"] == order["order_number"]


@pytest.mark.asyncio
async def test_confirm_with_saved_address(client: AsyncClient, make_product, user_token):
    product = make_product()
    headers = auth(user_token)
    created = await client.post(
        "/api/v1/me/addresses", json={**SHIPPING, "label": "Office"}, headers=headers
    )
    assert created.status_code == 201, created.text
    await _fill_cart(client, headers, product)

    resp = await client.post(
        "/api/v1/checkout/confirm", json={"address_id": created.json()["id"]}, headers=headers
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["order"]["shipping_address"]["line1"] == SHIPPING["line1"]
    assert "label" not in resp.json()["order"]["shipping_address"]


@pytest.mark.asyncio
async def test_coupon_usage_limit_n_plus_one(client: AsyncClient, make_product, make_coupon):
    product = make_product(price=1_000_000, stock=10)
    coupon = make_coupon(code="TWICE", discount_percent=10, usage_limit=2)

    statuses = []
    last_headers = None
    for _ in range(3):
        last_headers = guest_headers()
        await _fill_cart(client, last_headers, product)
        resp = await client.post(
            "/api/v1/checkout/confirm",
            json={"email": "buyer@storefront.vn", "shipping_address": SHIPPING, "coupon_code": "TWICE"},
            headers=last_headers,
        )
        statuses.append(resp.status_code)

    assert statuses == [201, 201, 400]
    assert resp.json()["code"] == "invalid_coupon"
    assert resp.json()["reason"] == "usage_limit_reached"
    assert read_coupon_uses(coupon.id) == 2
    assert read_stock(product.id) == 8
    # A failed confirm leaves the cart untouched
    count = await client.get("/api/v1/cart/count", headers=last_headers)
    assert count.json() == {"count": 1}


@pytest.mark.asyncio
async def test_out_of_stock_at_confirm_rolls_back(client: AsyncClient, db_session, make_product):
    product = make_product(stock=2)
    headers = guest_headers()
    await _fill_cart(client, headers, product, quantity=2)

    product.stock = 1
    db_session.commit()

    resp = await client.post(
        "/api/v1/checkout/confirm",
        json={"email": "buyer@storefront.vn", "shipping_address": SHIPPING},
        headers=headers,
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "out_of_stock"
    assert resp.json()["available"] == 1
    assert read_stock(product.id) == 1
    assert (await client.get("/api/v1/cart/count", headers=headers)).json() == {"count": 2}


@pytest.mark.asyncio
async def test_idempotency_key_replays_order(client: AsyncClient, make_product, user_token):
    product = make_product(stock=5)
    headers = auth(user_token)
    await _fill_cart(client, headers, product)
    key = {"Idempotency-Key": f"checkout-{uuid.uuid4().hex}"}

    first = await client.post(
        "/api/v1/checkout/confirm", json={"shipping_address": SHIPPING}, headers={**headers, **key}
    )
    assert first.status_code == 201, first.text
    second = await client.post(
        "/api/v1/checkout/confirm", json={"shipping_address": SHIPPING}, headers={**headers, **key}
    )
    assert second.status_code == 200, second.text
    assert second.json()["order"]["id"] == first.json()["order"]["id"]
    assert read_stock(product.id) == 4

    listing = await client.get("/api/v1/orders/my", headers=headers)
    assert listing.json()["total"] == 1


@pytest.mark.asyncio
async def test_vnpay_confirm_returns_signed_url(client: AsyncClient, make_product, user_token):
    product = make_product(price=250_000)
    headers = auth(user_token)
    await _fill_cart(client, headers, product)

    resp = await client.post(
        "/api/v1/checkout/confirm",
        json={"shipping_address": SHIPPING, "payment_method": "vnpay"},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    order = body["order"]
    assert order["payment_method"] == "vnpay"
    assert order["payment_status"] == "pending"

    url = body["payment_url"]
    assert url.startswith(settings.VNP_URL + "?")
    query = parse_qs(urlsplit(url).query)
    assert query["vnp_Amount"] == [str(order["total_amount"] * 100)]
    assert query["vnp_TxnRef"] == [uuid.UUID(order["id"]).hex]
    assert query["vnp_TmnCode"] == [settings.VNP_TMN_CODE]
    assert len(query["vnp_SecureHash"][0]) == 128


@pytest.mark.asyncio
async def test_confirm_survives_event_broker_outage(client: AsyncClient, make_product, user_token, monkeypatch):
    from storefront.services import event_bus

    def broker_down(*args, **kwargs):
        raise ConnectionError("broker unreachable")

    monkeypatch.setattr(event_bus.handle_checkout_event, "apply_async", broker_down)
    product = make_product(stock=3)
    headers = auth(user_token)
    await _fill_cart(client, headers, product)

    resp = await client.post("/api/v1/checkout/confirm", json={"shipping_address": SHIPPING}, headers=headers)
    assert resp.status_code == 201, resp.text
    assert read_stock(product.id) == 2
    assert event_bus.emit_checkout_event("order_created", {"order_id": "x"}) is False
