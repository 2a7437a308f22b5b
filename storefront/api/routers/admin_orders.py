from __future__ import annotations

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Security
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_user
from storefront.db.operations import commit_async, rollback_async
from storefront.db.session_async import get_async_db
from storefront.domain.enums import OrderStatus
from storefront.models.user import User
from storefront.schemas.order import OrderRead, OrderStatusUpdate, PaginatedOrders
from storefront.services import email_service, order_service
from storefront.services.event_bus import emit_checkout_event

router = APIRouter(prefix="/admin/orders", tags=["admin-orders"])


@router.get("", response_model=PaginatedOrders)
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Security(get_current_user, scopes=["orders:read"]),
):
    return await order_service.list_orders(
        db,
        status_filter=status_filter,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: UUID,
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Security(get_current_user, scopes=["orders:read"]),
):
    return await order_service.get_order(db, order_id)


@router.patch("/{order_id}/status", response_model=OrderRead)
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdate,
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Security(get_current_user, scopes=["orders:write"]),
):
    try:
        order = await order_service.update_status(db, order_id, payload.status, payload.note)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise

    to_email = order.guest_email
    if not to_email and order.user_id:
        to_email = await db.scalar(select(User.email).where(User.id == order.user_id))
    if to_email:
        email_service.send_status_update(to_email, order)
    emit_checkout_event(
        "order_status_changed",
        {"order_id": str(order.id), "status": order.status.value, "changed_by": str(current_user.id)},
    )
    return order
