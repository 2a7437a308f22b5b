from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Security, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_user
from storefront.db.operations import commit_async, rollback_async
from storefront.db.session_async import get_async_db
from storefront.models.user import User
from storefront.schemas.coupon import CouponCreate, CouponRead, CouponUpdate, CouponUsage, PaginatedCoupons
from storefront.services import coupon_service

router = APIRouter(prefix="/admin/coupons", tags=["admin-coupons"])


@router.post("", response_model=CouponRead, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    payload: CouponCreate,
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Security(get_current_user, scopes=["coupons:write"]),
):
    try:
        coupon = await coupon_service.create_coupon(db, payload)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise
    return coupon


@router.get("", response_model=PaginatedCoupons)
async def list_coupons(
    search: Optional[str] = Query(default=None, max_length=5),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Security(get_current_user, scopes=["coupons:read"]),
):
    return await coupon_service.list_coupons(db, page=page, limit=limit, search=search)


@router.get("/{coupon_id}", response_model=CouponRead)
async def get_coupon(
    coupon_id: UUID,
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Security(get_current_user, scopes=["coupons:read"]),
):
    return await coupon_service.get_coupon(db, coupon_id)


@router.get("/{coupon_id}/usage", response_model=CouponUsage)
async def get_coupon_usage(
    coupon_id: UUID,
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Security(get_current_user, scopes=["coupons:read"]),
):
    return await coupon_service.coupon_usage(db, coupon_id)


@router.patch("/{coupon_id}", response_model=CouponRead)
async def update_coupon(
    coupon_id: UUID,
    payload: CouponUpdate,
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Security(get_current_user, scopes=["coupons:write"]),
):
    try:
        coupon = await coupon_service.update_coupon(db, coupon_id, payload)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise
    return coupon


@router.delete("/{coupon_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_coupon(
    coupon_id: UUID,
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Security(get_current_user, scopes=["coupons:write"]),
):
    try:
        await coupon_service.delete_coupon(db, coupon_id)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise
