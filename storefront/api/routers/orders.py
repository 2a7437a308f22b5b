from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Security
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_user, get_optional_user
from storefront.db.session_async import get_async_db
from storefront.models.user import User
from storefront.schemas.order import OrderRead, PaginatedOrders
from storefront.services import order_service

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/my", response_model=PaginatedOrders)
async def list_my_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Security(get_current_user, scopes=["users:me"]),
):
    return await order_service.list_user_orders(db, current_user.id, page=page, limit=limit)


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: UUID,
    db: AsyncSession = Depends(get_async_db),
    current_user: User | None = Depends(get_optional_user),
):
    return await order_service.get_order_for_viewer(
        db,
        order_id,
        user_id=current_user.id if current_user else None,
        is_admin=bool(current_user and current_user.is_superuser),
    )
