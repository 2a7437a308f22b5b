from __future__ import annotations
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import List, Optional
from uuid import UUID

from storefront.domain.enums import PaymentMethod
from storefront.schemas.address import ShippingAddress
from storefront.schemas.loyalty import LoyaltyRedemption
from storefront.schemas.order import OrderRead


class PreviewRequest(BaseModel):
    # Free text on purpose: malformed codes are reported as invalid_coupon, not 422
    coupon_code: Optional[str] = Field(default=None, max_length=32)
    redeem_points: int = Field(default=0, ge=0)


class ConfirmRequest(PreviewRequest):
    email: Optional[EmailStr] = None
    shipping_address: Optional[ShippingAddress] = None
    address_id: Optional[UUID] = None
    payment_method: PaymentMethod = PaymentMethod.cod
    notes: Optional[str] = Field(default=None, max_length=1000)


class PricingBreakdown(BaseModel):
    subtotal: int
    tax: int
    shipping: int
    discount: int
    loyalty_applied: int
    total: int

    model_config = ConfigDict(from_attributes=True, frozen=True)


class CheckoutItem(BaseModel):
    product_id: UUID
    variant_sku: Optional[str]
    name: str
    image_url: Optional[str]
    quantity: int
    unit_price: int
    line_total: int


class AppliedCoupon(BaseModel):
    code: str
    discount_percent: int


class PreviewResponse(BaseModel):
    currency: str
    items: List[CheckoutItem]
    pricing: PricingBreakdown
    coupon: Optional[AppliedCoupon] = None
    loyalty: LoyaltyRedemption


class ConfirmResponse(BaseModel):
    order: OrderRead
    payment_url: Optional[str] = None
