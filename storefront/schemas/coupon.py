from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import List, Optional
from uuid import UUID
from datetime import datetime

COUPON_CODE_PATTERN = r"^[A-Z0-9]{5}$"


def _upper(value):
    if isinstance(value, str):
        return value.strip().upper()
    return value


class CouponCreate(BaseModel):
    code: str = Field(..., pattern=COUPON_CODE_PATTERN)
    discount_percent: int = Field(..., ge=1, le=100)
    usage_limit: int = Field(default=10, ge=1, le=10)

    @field_validator("code", mode="before")
    @classmethod
    def normalize_code(cls, value):
        return _upper(value)


class CouponUpdate(BaseModel):
    code: Optional[str] = Field(default=None, pattern=COUPON_CODE_PATTERN)
    discount_percent: Optional[int] = Field(default=None, ge=1, le=100)
    usage_limit: Optional[int] = Field(default=None, ge=1, le=10)

    @field_validator("code", mode="before")
    @classmethod
    def normalize_code(cls, value):
        return _upper(value)


class CouponRead(BaseModel):
    id: UUID
    code: str
    discount_percent: int
    usage_limit: int
    used_count: int
    remaining_uses: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaginatedCoupons(BaseModel):
    total: int
    page: int
    pages: int
    limit: int
    items: List[CouponRead]


class CouponUsageOrder(BaseModel):
    id: UUID
    order_number: str
    user_id: Optional[UUID]
    guest_email: Optional[str]
    discount_amount: int
    total_amount: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CouponUsage(BaseModel):
    coupon: CouponRead
    orders: List[CouponUsageOrder]
