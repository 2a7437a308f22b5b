"""VNPAY (Vietnam) redirect gateway, API version 2.1.0.

The buyer is redirected to a signed URL; VNPAY calls back on the return URL
(browser) and the IPN URL (server to server) with the same signed parameters.
"""

from __future__ import annotations

import hashlib
import hmac
import unicodedata
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from urllib.parse import quote_plus

from storefront.core.config import settings
from storefront.models.order import Order
from storefront.services.payment_providers import PaymentProviderConfigurationError

VNP_VERSION = "2.1.0"
VNP_TIMEZONE = timezone(timedelta(hours=7))
HASH_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")

RESPONSE_MESSAGES = {
    "00": "Transaction successful",
    "07": "Payment captured but flagged as suspicious",
    "09": "Card or account is not registered for internet banking",
    "10": "Card or account verification failed more than 3 times",
    "11": "Payment window expired",
    "12": "Card or account is locked",
    "13": "Wrong one-time password",
    "24": "Customer cancelled the transaction",
    "51": "Insufficient balance",
    "65": "Daily transaction limit exceeded",
    "75": "Bank under maintenance",
    "79": "Wrong payment password too many times",
    "99": "Unknown error",
}


def _credentials() -> tuple[str, str]:
    if not settings.VNP_TMN_CODE or not settings.VNP_HASH_SECRET:
        raise PaymentProviderConfigurationError("VNPAY is not configured (VNP_TMN_CODE / VNP_HASH_SECRET)")
    return settings.VNP_TMN_CODE, settings.VNP_HASH_SECRET


def remove_diacritics(text: str) -> str:
    """VNPAY rejects Vietnamese diacritics in vnp_OrderInfo."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.replace("đ", "d").replace("Đ", "D")


def _encode(value) -> str:
    # Same output as JavaScript encodeURIComponent with %20 turned into "+"
    return quote_plus(str(value), safe="!*'()")


def build_sign_data(params: Mapping[str, object]) -> str:
    return "&".join(
        f"{key}={_encode(params[key])}"
        for key in sorted(params)
        if key.startswith("vnp_") and key not in HASH_FIELDS and params[key] is not None
    )


def sign(params: Mapping[str, object], secret: str | None = None) -> str:
    if secret is None:
        _, secret = _credentials()
    data = build_sign_data(params)
    return hmac.new(secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha512).hexdigest()


def format_create_date(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(VNP_TIMEZONE).strftime("%Y%m%d%H%M%S")


def create_payment_url(
    order: Order,
    ip_addr: str,
    *,
    bank_code: str | None = None,
    locale: str | None = None,
    now: datetime | None = None,
) -> str:
    tmn_code, secret = _credentials()
    params: dict[str, object] = {
        "vnp_Version": VNP_VERSION,
        "vnp_Command": "pay",
        "vnp_TmnCode": tmn_code,
        "vnp_Locale": locale or settings.VNP_LOCALE,
        "vnp_CurrCode": "VND",
        "vnp_TxnRef": order.id.hex,
        "vnp_OrderInfo": remove_diacritics(f"Thanh toan don hang {order.order_number}"),
        "vnp_OrderType": "other",
        "vnp_Amount": int(order.total_amount) * 100,
        "vnp_ReturnUrl": settings.VNP_RETURN_URL,
        "vnp_IpAddr": ip_addr or "127.0.0.1",
        "vnp_CreateDate": format_create_date(now),
    }
    if bank_code:
        params["vnp_BankCode"] = bank_code

    query = build_sign_data(params)
    signature = sign(params, secret)
    return f"{settings.VNP_URL}?{query}&vnp_SecureHash={signature}"


def validate_secure_hash(params: Mapping[str, object]) -> bool:
    received = str(params.get("vnp_SecureHash") or "")
    if not received:
        return False
    expected = sign(params)
    return hmac.compare_digest(received.lower(), expected.lower())


def amount_from_params(params: Mapping[str, object]) -> int | None:
    raw = params.get("vnp_Amount")
    if raw in (None, ""):
        return None
    try:
        return int(str(raw)) // 100
    except ValueError:
        return None


def response_message(code: str | None) -> str:
    return RESPONSE_MESSAGES.get(code or "", f"Unknown error (code {code})")
