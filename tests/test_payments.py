# tests/test_payments.py
from urllib.parse import parse_qs, urlsplit

import pytest
from httpx import AsyncClient

from storefront.core.config import settings
from storefront.services.payment_providers import vnpay
from tests.helpers import SHIPPING, auth, read_stock


async def _vnpay_order(client: AsyncClient, token: str, product, quantity: int = 1) -> dict:
    headers = auth(token)
    resp = await client.post(
        "/api/v1/cart/items", json={"product_id": str(product.id), "quantity": quantity}, headers=headers
    )
    assert resp.status_code == 201, resp.text
    resp = await client.post(
        "/api/v1/checkout/confirm",
        json={"shipping_address": SHIPPING, "payment_method": "vnpay"},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["payment_url"]
    return resp.json()["order"]


def _callback_params(order: dict, *, response_code: str = "00", amount: int | None = None) -> dict:
    total = order["total_amount"] if amount is None else amount
    params = {
        "vnp_TmnCode": settings.VNP_TMN_CODE,
        "vnp_TxnRef": order["id"].replace("-", ""),
        "vnp_Amount": str(total * 100),
        "vnp_OrderInfo": f"Thanh toan don hang {order['order_number']}",
        "vnp_ResponseCode": response_code,
        "vnp_TransactionStatus": response_code,
        "vnp_TransactionNo": "14230001",
        "vnp_BankCode": "NCB",
        "vnp_CardType": "ATM",
        "vnp_PayDate": "20261019103000",
    }
    params["vnp_SecureHash"] = vnpay.sign(params)
    return params


def test_sign_data_skips_hash_and_foreign_keys():
    params = {
        "vnp_TxnRef": "abc",
        "vnp_Amount": "100000",
        "vnp_OrderInfo": "Thanh toan don (A)",
        "vnp_SecureHash": "deadbeef",
        "vnp_SecureHashType": "HmacSHA512",
        "utm_source": "mail",
    }
    assert vnpay.build_sign_data(params) == (
        "vnp_Amount=100000&vnp_OrderInfo=Thanh+toan+don+(A)&vnp_TxnRef=abc"
    )


def test_secure_hash_validation():
    params = {"vnp_TxnRef": "abc", "vnp_Amount": "100000"}
    params["vnp_SecureHash"] = vnpay.sign(params).upper()
    assert vnpay.validate_secure_hash(params)

    params["vnp_Amount"] = "200000"
    assert not vnpay.validate_secure_hash(params)
    assert not vnpay.validate_secure_hash({"vnp_TxnRef": "abc"})


def test_order_info_is_ascii():
    assert vnpay.remove_diacritics("Thanh toán đơn hàng Đà Nẵng") == "Thanh toan don hang Da Nang"


@pytest.mark.asyncio
async def test_ipn_confirms_payment_once(client: AsyncClient, make_product, user_token):
    product = make_product(price=1_000_000, stock=3)
    order = await _vnpay_order(client, user_token, product)
    assert order["payment_status"] == "pending"
    params = _callback_params(order)

    resp = await client.get("/api/v1/payments/vnpay/ipn", params=params)
    assert resp.status_code == 200
    assert resp.json() == {"RspCode": "00", "Message": "Confirm Success"}

    detail = await client.get(f"/api/v1/orders/{order['id']}", headers=auth(user_token))
    body = detail.json()
    assert body["status"] == "confirmed"
    assert body["payment_status"] == "paid"
    assert body["paid_at"] is not None
    assert body["payment_info"]["transaction_no"] == "14230001"

    again = await client.get("/api/v1/payments/vnpay/ipn", params=params)
    assert again.json()["RspCode"] == "02"


@pytest.mark.asyncio
async def test_ipn_rejects_bad_signature(client: AsyncClient, make_product, user_token):
    order = await _vnpay_order(client, user_token, make_product())
    params = _callback_params(order)
    params["vnp_SecureHash"] = "0" * 128

    resp = await client.get("/api/v1/payments/vnpay/ipn", params=params)
    assert resp.json()["RspCode"] == "97"


@pytest.mark.asyncio
async def test_ipn_unknown_order_and_amount_mismatch(client: AsyncClient, make_product, user_token):
    order = await _vnpay_order(client, user_token, make_product())

    unknown = dict(order, id="00000000-0000-0000-0000-000000000001")
    resp = await client.get("/api/v1/payments/vnpay/ipn", params=_callback_params(unknown))
    assert resp.json()["RspCode"] == "01"

    resp = await client.get(
        "/api/v1/payments/vnpay/ipn", params=_callback_params(order, amount=order["total_amount"] - 1000)
    )
    assert resp.json()["RspCode"] == "04"


@pytest.mark.asyncio
async def test_failed_payment_cancels_and_restocks(client: AsyncClient, make_product, user_token):
    product = make_product(price=1_000_000, stock=3)
    order = await _vnpay_order(client, user_token, product, quantity=2)
    assert read_stock(product.id) == 1

    resp = await client.get("/api/v1/payments/vnpay/ipn", params=_callback_params(order, response_code="24"))
    assert resp.json()["RspCode"] == "00"
    assert read_stock(product.id) == 3

    detail = await client.get(f"/api/v1/orders/{order['id']}", headers=auth(user_token))
    assert detail.json()["status"] == "cancelled"
    assert detail.json()["payment_status"] == "failed"


@pytest.mark.asyncio
async def test_return_url_redirects_to_frontend(client: AsyncClient, make_product, user_token):
    order = await _vnpay_order(client, user_token, make_product())

    resp = await client.get("/api/v1/payments/vnpay/return", params=_callback_params(order))
    assert resp.status_code == 302
    location = resp.headers["location"]
    assert location.startswith(f"{settings.FRONTEND_URL}/payment/vnpay/return?")
    query = parse_qs(urlsplit(location).query)
    assert query["success"] == ["true"]
    assert query["orderId"] == [order["id"]]
    assert query["code"] == ["00"]


@pytest.mark.asyncio
async def test_new_payment_url_only_while_pending(client: AsyncClient, make_product, user_token, admin_token):
    order = await _vnpay_order(client, user_token, make_product())

    resp = await client.post(f"/api/v1/payments/vnpay/{order['id']}/url", headers=auth(user_token))
    assert resp.status_code == 200
    assert resp.json()["payment_url"].startswith(settings.VNP_URL)

    await client.get("/api/v1/payments/vnpay/ipn", params=_callback_params(order))
    resp = await client.post(f"/api/v1/payments/vnpay/{order['id']}/url", headers=auth(user_token))
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_cod_orders_have_no_payment_url(client: AsyncClient, make_product, user_token):
    headers = auth(user_token)
    await client.post("/api/v1/cart/items", json={"product_id": str(make_product().id), "quantity": 1}, headers=headers)
    resp = await client.post("/api/v1/checkout/confirm", json={"shipping_address": SHIPPING}, headers=headers)
    assert resp.status_code == 201
    assert resp.json()["payment_url"] is None
    assert resp.json()["order"]["payment_status"] == "unpaid"

    url = await client.post(f"/api/v1/payments/vnpay/{resp.json()['order']['id']}/url", headers=headers)
    assert url.status_code == 409
