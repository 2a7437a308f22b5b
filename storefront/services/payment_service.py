from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger, security_alert
from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus
from storefront.models.order import Order
from storefront.services import order_service
from storefront.services.exceptions import ConflictError, ResourceNotFoundError
from storefront.services.payment_providers import vnpay

logger = get_logger(__name__)


@dataclass(frozen=True)
class CallbackResult:
    """Outcome of a VNPAY callback, expressed with VNPAY's own RspCode values."""

    rsp_code: str
    message: str
    order: Order | None = None
    success: bool = False
    changed: bool = False
    response_code: str | None = None


def _payment_info(params: Mapping[str, object]) -> dict:
    return {
        "provider": "vnpay",
        "transaction_no": params.get("vnp_TransactionNo"),
        "bank_code": params.get("vnp_BankCode"),
        "card_type": params.get("vnp_CardType"),
        "pay_date": params.get("vnp_PayDate"),
        "response_code": params.get("vnp_ResponseCode"),
        "transaction_status": params.get("vnp_TransactionStatus"),
        "txn_ref": params.get("vnp_TxnRef"),
    }


def _order_ref(params: Mapping[str, object]) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(params.get("vnp_TxnRef") or ""))
    except ValueError:
        return None


def _is_success(params: Mapping[str, object]) -> bool:
    status = params.get("vnp_TransactionStatus")
    return params.get("vnp_ResponseCode") == "00" and status in (None, "", "00")


async def create_vnpay_url(db: AsyncSession, order_id, ip_addr: str, *, user_id: uuid.UUID | None) -> str:
    """Build a fresh payment URL for an order still waiting for its VNPAY payment."""
    order = await order_service.get_order_for_viewer(db, order_id, user_id=user_id)
    if order.payment_method != PaymentMethod.vnpay:
        raise ConflictError("Order is not paid through VNPAY")
    if order.payment_status != PaymentStatus.pending or order.status != OrderStatus.pending:
        raise ConflictError("Order is not awaiting payment")
    return vnpay.create_payment_url(order, ip_addr)


async def handle_vnpay_callback(db: AsyncSession, params: Mapping[str, object], *, source: str) -> CallbackResult:
    """Shared by the browser return URL and the server-to-server IPN."""
    if not vnpay.validate_secure_hash(params):
        security_alert(
            "VNPAY callback with invalid signature",
            source=source,
            txn_ref=str(params.get("vnp_TxnRef")),
        )
        return CallbackResult(rsp_code="97", message="Invalid signature")

    response_code = str(params.get("vnp_ResponseCode") or "") or None
    order_ref = _order_ref(params)
    order = None
    if order_ref is not None:
        try:
            order = await order_service.get_order(db, order_ref)
        except ResourceNotFoundError:
            order = None
    if order is None:
        logger.warning("VNPAY callback for unknown order", extra={"txn_ref": str(params.get("vnp_TxnRef"))})
        return CallbackResult(rsp_code="01", message="Order not found", response_code=response_code)

    amount = vnpay.amount_from_params(params)
    if (amount is None and source == "ipn") or (amount is not None and abs(amount - order.total_amount) > 1):
        logger.warning(
            "VNPAY amount mismatch",
            extra={"order_id": str(order.id), "amount": amount, "expected": order.total_amount},
        )
        return CallbackResult(rsp_code="04", message="Invalid amount", order=order, response_code=response_code)

    success = _is_success(params)
    if order.payment_status in (PaymentStatus.paid, PaymentStatus.failed):
        return CallbackResult(
            rsp_code="02",
            message="Order already confirmed",
            order=order,
            success=order.payment_status == PaymentStatus.paid,
            response_code=response_code,
        )

    if success:
        await order_service.mark_paid(db, order, _payment_info(params))
        logger.info("VNPAY payment confirmed", extra={"order_id": str(order.id), "source": source})
    elif order.payment_status == PaymentStatus.pending:
        await order_service.mark_payment_failed(db, order, _payment_info(params))
        logger.info(
            "VNPAY payment failed",
            extra={"order_id": str(order.id), "source": source, "response_code": response_code},
        )
    else:
        return CallbackResult(rsp_code="02", message="Order already confirmed", order=order, response_code=response_code)

    order = await order_service.get_order(db, order.id)
    return CallbackResult(
        rsp_code="00",
        message="Confirm Success",
        order=order,
        success=success,
        changed=True,
        response_code=response_code,
    )
