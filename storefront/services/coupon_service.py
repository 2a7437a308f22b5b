from __future__ import annotations

import math
import re
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.core.metrics import record_coupon_rejection
from storefront.db.operations import flush_async, guarded_update, refresh_async
from storefront.models.coupon import Coupon
from storefront.models.order import Order
from storefront.schemas.coupon import CouponCreate, CouponUpdate
from storefront.services.exceptions import (
    ConflictError,
    DomainValidationError,
    InvalidCouponError,
    ResourceNotFoundError,
)

logger = get_logger(__name__)

_CODE_RE = re.compile(r"^[A-Z0-9]{5}$")


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def _reject(detail: str, reason: str) -> InvalidCouponError:
    record_coupon_rejection(reason)
    return InvalidCouponError(detail, reason=reason)


async def resolve(db: AsyncSession, code: str | None) -> Coupon:
    """Look up a coupon that can still be used. Never changes usage."""
    normalized = normalize_code(code)
    if not _CODE_RE.match(normalized):
        raise _reject("Invalid coupon code", "malformed")

    result = await db.execute(select(Coupon).where(Coupon.code == normalized))
    coupon = result.scalars().first()
    if not coupon:
        raise _reject("Invalid coupon code", "not_found")
    if coupon.used_count >= coupon.usage_limit:
        raise _reject("Coupon usage limit exceeded", "usage_limit_reached")
    return coupon


async def consume(db: AsyncSession, coupon: Coupon) -> None:
    """Take one usage slot; loses cleanly to a concurrent confirm."""
    stmt = (
        update(Coupon)
        .where(Coupon.id == coupon.id, Coupon.used_count < Coupon.usage_limit)
        .values(used_count=Coupon.used_count + 1)
    )
    if not await guarded_update(db, stmt):
        raise _reject("Coupon usage limit exceeded", "usage_limit_reached")
    logger.info("Coupon consumed", extra={"coupon_code": coupon.code})


# --- Admin ---------------------------------------------------------------------
async def get_coupon(db: AsyncSession, coupon_id: uuid.UUID) -> Coupon:
    coupon = await db.get(Coupon, coupon_id, populate_existing=True)
    if not coupon:
        raise ResourceNotFoundError("Coupon not found")
    return coupon


async def create_coupon(db: AsyncSession, payload: CouponCreate) -> Coupon:
    existing = await db.scalar(select(Coupon.id).where(Coupon.code == payload.code))
    if existing:
        raise ConflictError(f"Coupon code {payload.code} already exists")

    coupon = Coupon(
        code=payload.code,
        discount_percent=payload.discount_percent,
        usage_limit=payload.usage_limit,
        used_count=0,
    )
    db.add(coupon)
    try:
        await flush_async(db, coupon)
    except IntegrityError as exc:
        raise ConflictError(f"Coupon code {payload.code} already exists") from exc
    await refresh_async(db, coupon)
    return coupon


async def list_coupons(db: AsyncSession, *, page: int = 1, limit: int = 20, search: str | None = None) -> dict:
    stmt = select(Coupon)
    count_stmt = select(func.count()).select_from(Coupon)
    if search:
        pattern = f"%{search.strip().upper()}%"
        stmt = stmt.where(Coupon.code.like(pattern))
        count_stmt = count_stmt.where(Coupon.code.like(pattern))

    total = await db.scalar(count_stmt) or 0
    result = await db.execute(stmt.order_by(Coupon.created_at.desc()).offset((page - 1) * limit).limit(limit))
    return {
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
        "limit": limit,
        "items": list(result.scalars().all()),
    }


async def update_coupon(db: AsyncSession, coupon_id: uuid.UUID, payload: CouponUpdate) -> Coupon:
    coupon = await get_coupon(db, coupon_id)
    data = payload.model_dump(exclude_unset=True, exclude_none=True)

    if "code" in data and data["code"] != coupon.code:
        clash = await db.scalar(select(Coupon.id).where(Coupon.code == data["code"]))
        if clash:
            raise ConflictError(f"Coupon code {data['code']} already exists")
    if "usage_limit" in data and data["usage_limit"] < coupon.used_count:
        raise DomainValidationError("usage_limit cannot be lower than the number of times the coupon was used")

    for field, value in data.items():
        setattr(coupon, field, value)
    await flush_async(db, coupon)
    await refresh_async(db, coupon)
    return coupon


async def delete_coupon(db: AsyncSession, coupon_id: uuid.UUID) -> None:
    coupon = await get_coupon(db, coupon_id)
    await db.delete(coupon)
    await flush_async(db)


async def coupon_usage(db: AsyncSession, coupon_id: uuid.UUID) -> dict:
    coupon = await get_coupon(db, coupon_id)
    result = await db.execute(
        select(Order).where(Order.coupon_id == coupon.id).order_by(Order.created_at.desc())
    )
    return {"coupon": coupon, "orders": list(result.scalars().all())}
