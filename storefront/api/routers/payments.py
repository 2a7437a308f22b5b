from __future__ import annotations

from urllib.parse import urlencode
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import client_ip, get_optional_user
from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.db.operations import commit_async, rollback_async
from storefront.db.session_async import get_async_db
from storefront.domain.enums import PaymentStatus
from storefront.models.order import Order
from storefront.models.user import User
from storefront.services import email_service, payment_service
from storefront.services.event_bus import emit_checkout_event
from storefront.services.payment_providers import vnpay

router = APIRouter(prefix="/payments", tags=["payments"])
logger = get_logger(__name__)


async def _notify_payment(db: AsyncSession, order: Order) -> None:
    to_email = order.guest_email
    if not to_email and order.user_id:
        to_email = await db.scalar(select(User.email).where(User.id == order.user_id))
    if to_email:
        email_service.send_status_update(to_email, order)
    emit_checkout_event(
        "order_paid" if order.payment_status == PaymentStatus.paid else "order_payment_failed",
        {"order_id": str(order.id), "status": order.status.value, "payment_status": order.payment_status.value},
    )


@router.post("/vnpay/{order_id}/url")
async def create_vnpay_payment_url(
    order_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    current_user: User | None = Depends(get_optional_user),
):
    payment_url = await payment_service.create_vnpay_url(
        db,
        order_id,
        client_ip(request),
        user_id=current_user.id if current_user else None,
    )
    return {"payment_url": payment_url}


@router.get("/vnpay/return", include_in_schema=False)
async def vnpay_return(request: Request, db: AsyncSession = Depends(get_async_db)):
    """Browser redirect after payment; the frontend reads the outcome from the query string."""
    params = dict(request.query_params)
    try:
        result = await payment_service.handle_vnpay_callback(db, params, source="return")
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise

    if result.changed and result.order is not None:
        await _notify_payment(db, result.order)

    code = result.response_code or result.rsp_code
    query = urlencode(
        {
            "success": "true" if result.success else "false",
            "orderId": str(result.order.id) if result.order else "",
            "code": code,
            "message": vnpay.response_message(code) if result.response_code else result.message,
        }
    )
    return RedirectResponse(
        url=f"{settings.FRONTEND_URL}/payment/vnpay/return?{query}",
        status_code=status.HTTP_302_FOUND,
    )


@router.get("/vnpay/ipn")
async def vnpay_ipn(request: Request, db: AsyncSession = Depends(get_async_db)):
    """Server to server notification. VNPAY expects a 200 with RspCode/Message in every case."""
    params = dict(request.query_params)
    try:
        result = await payment_service.handle_vnpay_callback(db, params, source="ipn")
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        logger.exception("VNPAY IPN processing failed", extra={"txn_ref": params.get("vnp_TxnRef")})
        return {"RspCode": "99", "Message": "Unknown error"}

    if result.changed and result.order is not None:
        await _notify_payment(db, result.order)
    return {"RspCode": result.rsp_code, "Message": result.message}
