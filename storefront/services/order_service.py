from __future__ import annotations

import math
import uuid
from datetime import date, datetime, time, timezone
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.logging import get_logger
from storefront.db.operations import flush_async
from storefront.domain.enums import (
    LedgerEntryType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    TERMINAL_ORDER_STATUSES,
    ONLINE_PAYMENT_METHODS,
)
from storefront.models.order import Order, OrderLine, OrderStatusEntry
from storefront.schemas.checkout import CheckoutItem, PricingBreakdown
from storefront.services import inventory_service, loyalty_service
from storefront.services.exceptions import (
    ConflictError,
    DomainValidationError,
    ResourceNotFoundError,
)

logger = get_logger(__name__)


def _as_uuid(value, field: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise DomainValidationError(f"Invalid UUID for {field}") from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _order_stmt():
    return (
        select(Order)
        .options(selectinload(Order.lines), selectinload(Order.status_history))
        .execution_options(populate_existing=True)
    )


async def get_order(db: AsyncSession, order_id) -> Order:
    result = await db.execute(_order_stmt().where(Order.id == _as_uuid(order_id, "order_id")))
    order = result.scalars().first()
    if not order:
        raise ResourceNotFoundError("Order not found")
    return order


async def get_order_for_viewer(
    db: AsyncSession,
    order_id,
    *,
    user_id: uuid.UUID | None,
    is_admin: bool = False,
) -> Order:
    """Owners and admins see any order; orders placed at guest checkout are readable by id."""
    order = await get_order(db, order_id)
    if is_admin or order.guest_email:
        return order
    if user_id is None or order.user_id != user_id:
        raise ResourceNotFoundError("Order not found")
    return order


async def find_by_idempotency_key(db: AsyncSession, scope: str, key: str) -> Order | None:
    result = await db.execute(
        _order_stmt().where(Order.idempotency_scope == scope, Order.idempotency_key == key)
    )
    return result.scalars().first()


def append_status(order: Order, status: OrderStatus, note: str | None = None) -> OrderStatusEntry:
    """History is append-only: a new entry, never an edit of an old one."""
    seq = max((entry.seq for entry in order.status_history), default=0) + 1
    entry = OrderStatusEntry(seq=seq, status=status, note=note, at=_utcnow())
    order.status_history.append(entry)
    order.status = status
    return entry


async def create_order(
    db: AsyncSession,
    *,
    items: Iterable[CheckoutItem],
    pricing: PricingBreakdown,
    shipping_address: dict,
    payment_method: PaymentMethod,
    user_id: uuid.UUID | None = None,
    guest_email: str | None = None,
    coupon_id: uuid.UUID | None = None,
    coupon_code: str | None = None,
    discount_percent: int = 0,
    notes: str | None = None,
    currency: str = "VND",
    idempotency_scope: str | None = None,
    idempotency_key: str | None = None,
) -> Order:
    """Freeze a priced cart into an order in ``pending`` with one history entry."""
    payment_status = (
        PaymentStatus.pending if payment_method in ONLINE_PAYMENT_METHODS else PaymentStatus.unpaid
    )
    order = Order(
        user_id=user_id,
        guest_email=guest_email,
        currency=currency,
        status=OrderStatus.pending,
        payment_method=payment_method,
        payment_status=payment_status,
        subtotal_amount=pricing.subtotal,
        tax_amount=pricing.tax,
        shipping_amount=pricing.shipping,
        discount_amount=pricing.discount,
        loyalty_amount=pricing.loyalty_applied,
        total_amount=pricing.total,
        coupon_id=coupon_id,
        coupon_code=coupon_code,
        discount_percent=discount_percent,
        points_redeemed=pricing.loyalty_applied,
        points_awarded=False,
        shipping_address=shipping_address,
        notes=notes,
        idempotency_scope=idempotency_scope if idempotency_key else None,
        idempotency_key=idempotency_key,
        lines=[
            OrderLine(
                product_id=item.product_id,
                variant_sku=item.variant_sku,
                name=item.name,
                image_url=item.image_url,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
            )
            for item in items
        ],
        status_history=[],
    )
    append_status(order, OrderStatus.pending, "Order placed")
    db.add(order)
    await flush_async(db, order)
    return order


async def _release_order(db: AsyncSession, order: Order, reason: str) -> None:
    """Give back what the order took: stock and redeemed points."""
    for line in order.lines:
        await inventory_service.restore_stock(db, line.product_id, line.variant_sku, line.quantity)
    if order.points_redeemed and order.user_id:
        await loyalty_service.credit(
            db,
            order.user_id,
            order.points_redeemed,
            entry_type=LedgerEntryType.refund,
            order_id=order.id,
            description=f"Refund for order #{order.order_number} ({reason})",
        )


async def _award_points(db: AsyncSession, order: Order) -> None:
    if order.points_awarded or not order.user_id:
        return
    points = loyalty_service.compute_earned_points(order.total_amount)
    order.points_awarded = True
    if points > 0:
        await loyalty_service.credit(
            db,
            order.user_id,
            points,
            entry_type=LedgerEntryType.earn,
            order_id=order.id,
            description=f"Earned on order #{order.order_number}",
        )


async def update_status(
    db: AsyncSession,
    order_id,
    new_status: OrderStatus,
    note: str | None = None,
) -> Order:
    order = await get_order(db, order_id)
    if order.status in TERMINAL_ORDER_STATUSES:
        raise ConflictError(f"Order is already {order.status.value} and cannot change status")
    if order.status == new_status:
        raise ConflictError(f"Order is already {new_status.value}")

    previous = order.status
    append_status(order, new_status, note)

    if new_status == OrderStatus.cancelled:
        order.cancelled_at = _utcnow()
        if order.payment_status == PaymentStatus.pending:
            order.payment_status = PaymentStatus.failed
        await _release_order(db, order, "cancelled")
    elif new_status == OrderStatus.delivered:
        await _award_points(db, order)

    await flush_async(db)
    logger.info(
        "Order status changed",
        extra={"order_id": str(order.id), "from": previous.value, "to": new_status.value},
    )
    return await get_order(db, order.id)


async def mark_paid(db: AsyncSession, order: Order, payment_info: dict) -> Order:
    order.payment_status = PaymentStatus.paid
    order.payment_info = payment_info
    order.paid_at = _utcnow()
    if order.status == OrderStatus.pending:
        append_status(order, OrderStatus.confirmed, "Payment received")
    await flush_async(db)
    return order


async def mark_payment_failed(db: AsyncSession, order: Order, payment_info: dict) -> Order:
    order.payment_status = PaymentStatus.failed
    order.payment_info = payment_info
    if order.status not in TERMINAL_ORDER_STATUSES:
        append_status(order, OrderStatus.cancelled, "Payment failed")
        order.cancelled_at = _utcnow()
        await _release_order(db, order, "payment failed")
    await flush_async(db)
    return order


def _page(total: int, page: int, limit: int, items: list) -> dict:
    return {
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
        "limit": limit,
        "items": items,
    }


async def list_user_orders(db: AsyncSession, user_id: uuid.UUID, *, page: int = 1, limit: int = 10) -> dict:
    total = await db.scalar(select(func.count()).select_from(Order).where(Order.user_id == user_id)) or 0
    result = await db.execute(
        select(Order)
        .options(selectinload(Order.lines))
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return _page(total, page, limit, list(result.scalars().all()))


async def list_orders(
    db: AsyncSession,
    *,
    status_filter: OrderStatus | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    conditions = []
    if status_filter:
        conditions.append(Order.status == status_filter)
    if date_from:
        conditions.append(Order.created_at >= datetime.combine(date_from, time.min, tzinfo=timezone.utc))
    if date_to:
        conditions.append(Order.created_at <= datetime.combine(date_to, time.max, tzinfo=timezone.utc))

    total = await db.scalar(select(func.count()).select_from(Order).where(*conditions)) or 0
    result = await db.execute(
        select(Order)
        .options(selectinload(Order.lines))
        .where(*conditions)
        .order_by(Order.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return _page(total, page, limit, list(result.scalars().all()))
