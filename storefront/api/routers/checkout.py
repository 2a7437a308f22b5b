from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import client_ip, get_cart_identity
from storefront.db.operations import commit_async, rollback_async
from storefront.db.session_async import get_async_db
from storefront.schemas.checkout import ConfirmRequest, ConfirmResponse, PreviewRequest, PreviewResponse
from storefront.services import checkout_service, email_service
from storefront.services.cart_service import CartIdentity
from storefront.services.event_bus import emit_checkout_event

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/preview", response_model=PreviewResponse)
async def checkout_preview(
    payload: PreviewRequest,
    db: AsyncSession = Depends(get_async_db),
    identity: CartIdentity = Depends(get_cart_identity),
):
    return await checkout_service.preview(db, identity, payload)


@router.post("/confirm", response_model=ConfirmResponse, status_code=status.HTTP_201_CREATED)
async def checkout_confirm(
    payload: ConfirmRequest,
    request: Request,
    response: Response,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key", max_length=120),
    db: AsyncSession = Depends(get_async_db),
    identity: CartIdentity = Depends(get_cart_identity),
):
    try:
        result = await checkout_service.confirm(
            db,
            identity,
            payload,
            idempotency_key=idempotency_key,
            client_ip=client_ip(request),
        )
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise

    if result.replayed:
        response.status_code = status.HTTP_200_OK
        return ConfirmResponse(order=result.order, payment_url=None)

    order = result.order
    if result.notify_email:
        email_service.send_order_confirmation(result.notify_email, order)
    emit_checkout_event(
        "order_created",
        {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "total": order.total_amount,
            "payment_method": order.payment_method.value,
            "user_id": str(order.user_id) if order.user_id else None,
        },
    )
    return ConfirmResponse(order=order, payment_url=result.payment_url)
