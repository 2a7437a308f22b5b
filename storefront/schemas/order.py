from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus


class OrderLineRead(BaseModel):
    id: UUID
    product_id: Optional[UUID]
    variant_sku: Optional[str]
    name: str
    image_url: Optional[str]
    quantity: int
    unit_price: int
    line_total: int

    model_config = ConfigDict(from_attributes=True)


class OrderStatusEntryRead(BaseModel):
    seq: int
    status: OrderStatus
    note: Optional[str]
    at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderRead(BaseModel):
    id: UUID
    order_number: str
    user_id: Optional[UUID]
    guest_email: Optional[str]

    currency: str
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus

    subtotal_amount: int
    tax_amount: int
    shipping_amount: int
    discount_amount: int
    loyalty_amount: int
    total_amount: int

    coupon_code: Optional[str]
    discount_percent: int
    points_redeemed: int
    points_awarded: bool

    shipping_address: dict
    payment_info: Optional[dict]
    notes: Optional[str]

    created_at: datetime
    updated_at: Optional[datetime]
    paid_at: Optional[datetime]
    cancelled_at: Optional[datetime]

    lines: List[OrderLineRead] = Field(default_factory=list)
    status_history: List[OrderStatusEntryRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class OrderSummary(BaseModel):
    id: UUID
    order_number: str
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    total_amount: int
    item_count: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaginatedOrders(BaseModel):
    total: int
    page: int
    pages: int
    limit: int
    items: List[OrderSummary]


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    note: Optional[str] = Field(default=None, max_length=255)
