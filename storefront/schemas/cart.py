# storefront/schemas/cart.py
from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import List, Optional
from uuid import UUID

from storefront.domain.enums import CartWarningType


def _normalize_sku(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().upper()
    return value or None


class CartItemCreate(BaseModel):
    product_id: UUID
    quantity: int = Field(default=1, ge=1)
    variant_sku: Optional[str] = Field(default=None, max_length=64)

    @field_validator("variant_sku")
    @classmethod
    def normalize_sku(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_sku(value)


class CartItemUpdate(BaseModel):
    # 0 (or below) removes the line
    quantity: int


class CartBulkAdd(BaseModel):
    items: List[CartItemCreate] = Field(..., min_length=1, max_length=100)


class CartMergeRequest(BaseModel):
    guest_token: str = Field(..., min_length=1, max_length=120)


class CartWarning(BaseModel):
    type: CartWarningType
    product_id: UUID
    variant_sku: Optional[str] = None
    message: str
    allowed_qty: int


class CartItemRead(BaseModel):
    id: UUID
    product_id: UUID
    variant_sku: Optional[str]
    quantity: int
    price_at_add: int
    name_snapshot: str
    image_snapshot: Optional[str]
    line_total: int

    model_config = ConfigDict(from_attributes=True)


class CartRead(BaseModel):
    id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    guest_token: Optional[str] = None
    currency: str = "VND"
    subtotal: int = 0
    count: int = 0
    items: List[CartItemRead] = Field(default_factory=list)
    warnings: List[CartWarning] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class CartCount(BaseModel):
    count: int


class BulkAddResult(BaseModel):
    ok: bool
    product_id: UUID
    variant_sku: Optional[str] = None
    added_qty: int = 0
    reason: Optional[str] = None


class BulkAddResponse(BaseModel):
    results: List[BulkAddResult]
    cart: CartRead
    warnings: List[CartWarning] = Field(default_factory=list)
