"""Checkout: price a cart (preview) and turn it into an order (confirm).

``preview`` and ``confirm`` go through the same ``_quote`` call with the same
inputs, so the total a buyer sees is the total that gets charged. Client
supplied totals are never read.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.core.metrics import record_order_created
from storefront.core.security import generate_random_password, get_password_hash
from storefront.db.operations import flush_async
from storefront.domain.enums import PaymentMethod
from storefront.models.coupon import Coupon
from storefront.models.order import Order
from storefront.models.user import Address, User
from storefront.schemas.checkout import CheckoutItem, ConfirmRequest, PreviewRequest
from storefront.services import (
    cart_service,
    coupon_service,
    inventory_service,
    loyalty_service,
    order_service,
    pricing,
)
from storefront.services.cart_service import CartIdentity
from storefront.services.exceptions import (
    AddressRequiredError,
    CartEmptyError,
    ConflictError,
    DomainValidationError,
    ResourceNotFoundError,
)
from storefront.services.payment_providers import vnpay

logger = get_logger(__name__)


@dataclass(frozen=True)
class CheckoutQuote:
    items: list[CheckoutItem]
    price: pricing.PriceQuote
    coupon: Coupon | None


@dataclass(frozen=True)
class ConfirmResult:
    order: Order
    payment_url: str | None
    replayed: bool
    notify_email: str | None


async def _cart_items(db: AsyncSession, identity: CartIdentity) -> list[CheckoutItem]:
    cart = await cart_service.get_cart(db, identity)
    if not cart or not cart.items:
        raise CartEmptyError()
    return [
        CheckoutItem(
            product_id=item.product_id,
            variant_sku=item.variant_sku,
            name=item.name_snapshot,
            image_url=item.image_snapshot,
            quantity=item.quantity,
            unit_price=item.price_at_add,
            line_total=item.line_total,
        )
        for item in cart.items
    ]


async def _validate_stock(db: AsyncSession, items: list[CheckoutItem]) -> None:
    for item in items:
        await inventory_service.ensure_available(
            db, item.product_id, item.variant_sku, item.quantity, name=item.name
        )


async def _quote(
    db: AsyncSession,
    identity: CartIdentity,
    items: list[CheckoutItem],
    payload: PreviewRequest,
) -> CheckoutQuote:
    subtotal = sum(item.line_total for item in items)
    coupon = None
    if payload.coupon_code and payload.coupon_code.strip():
        coupon = await coupon_service.resolve(db, payload.coupon_code)

    # Guests have no balance, so any requested points resolve to 0
    balance = await loyalty_service.get_balance(db, identity.user_id)
    price = pricing.quote(
        subtotal,
        discount_percent=coupon.discount_percent if coupon else 0,
        requested_points=payload.redeem_points,
        points_balance=balance,
    )
    return CheckoutQuote(items=items, price=price, coupon=coupon)


def _preview_payload(quote: CheckoutQuote) -> dict:
    return {
        "currency": settings.CURRENCY,
        "items": quote.items,
        "pricing": quote.price.breakdown,
        "coupon": (
            {"code": quote.coupon.code, "discount_percent": quote.coupon.discount_percent}
            if quote.coupon
            else None
        ),
        "loyalty": asdict(quote.price.redemption),
    }


async def preview(db: AsyncSession, identity: CartIdentity, payload: PreviewRequest) -> dict:
    """Read-only: nothing is reserved, consumed or written."""
    items = await _cart_items(db, identity)
    await _validate_stock(db, items)
    quote = await _quote(db, identity, items, payload)
    return _preview_payload(quote)


async def _resolve_address(db: AsyncSession, identity: CartIdentity, payload: ConfirmRequest) -> dict:
    if payload.address_id:
        if identity.user_id is None:
            raise AddressRequiredError("Saved addresses require signing in")
        address = await db.scalar(
            select(Address).where(Address.id == payload.address_id, Address.user_id == identity.user_id)
        )
        if not address:
            raise ResourceNotFoundError("Address not found")
        return address.snapshot()
    if payload.shipping_address:
        return payload.shipping_address.model_dump()
    raise AddressRequiredError("A shipping address is required")


async def _guest_account(db: AsyncSession, email: str, name: str | None) -> User:
    """Guest orders belong to the account with that email; one is opened if needed."""
    normalized = email.strip().lower()
    user = await db.scalar(select(User).where(User.email == normalized))
    if user:
        return user
    user = User(
        email=normalized,
        name=name,
        hashed_password=get_password_hash(generate_random_password()),
        is_active=True,
        total_points=0,
    )
    db.add(user)
    await flush_async(db, user)
    logger.info("Customer account created at guest checkout", extra={"user_id": str(user.id)})
    return user


async def _notify_email(db: AsyncSession, identity: CartIdentity, guest_email: str | None) -> str | None:
    if guest_email:
        return guest_email
    if identity.user_id is None:
        return None
    return await db.scalar(select(User.email).where(User.id == identity.user_id))


async def confirm(
    db: AsyncSession,
    identity: CartIdentity,
    payload: ConfirmRequest,
    *,
    idempotency_key: str | None = None,
    client_ip: str | None = None,
) -> ConfirmResult:
    """Create the order and apply every side effect in the caller's transaction.

    Coupon usage, point balance and stock are taken with guarded UPDATEs; any
    failure raises and the caller rolls the whole transaction back.
    """
    key = (idempotency_key or "").strip() or None
    if key:
        existing = await order_service.find_by_idempotency_key(db, identity.scope, key)
        if existing:
            logger.info("Checkout replayed by idempotency key", extra={"order_id": str(existing.id)})
            return ConfirmResult(order=existing, payment_url=None, replayed=True, notify_email=None)

    items = await _cart_items(db, identity)

    guest_email = None
    if identity.is_guest:
        if not payload.email:
            raise DomainValidationError("Email is required for guest checkout")
        guest_email = str(payload.email).strip().lower()

    shipping_address = await _resolve_address(db, identity, payload)
    await _validate_stock(db, items)
    quote = await _quote(db, identity, items, payload)
    breakdown = quote.price.breakdown

    owner_id = identity.user_id
    if owner_id is None:
        owner = await _guest_account(db, guest_email, shipping_address.get("recipient"))
        owner_id = owner.id

    try:
        order = await order_service.create_order(
            db,
            items=items,
            pricing=breakdown,
            shipping_address=shipping_address,
            payment_method=payload.payment_method,
            user_id=owner_id,
            guest_email=guest_email,
            coupon_id=quote.coupon.id if quote.coupon else None,
            coupon_code=quote.coupon.code if quote.coupon else None,
            discount_percent=quote.coupon.discount_percent if quote.coupon else 0,
            notes=payload.notes,
            currency=settings.CURRENCY,
            idempotency_scope=identity.scope,
            idempotency_key=key,
        )
    except IntegrityError as exc:
        raise ConflictError("A checkout with this idempotency key is already in progress") from exc

    if quote.coupon:
        await coupon_service.consume(db, quote.coupon)
    if breakdown.loyalty_applied > 0 and identity.user_id is not None:
        await loyalty_service.debit(
            db,
            identity.user_id,
            breakdown.loyalty_applied,
            order_id=order.id,
            description=f"Redeemed on order #{order.order_number}",
        )
    for item in items:
        await inventory_service.decrement_stock(
            db, item.product_id, item.variant_sku, item.quantity, name=item.name
        )

    await cart_service.clear_cart(db, identity)

    payment_url = None
    if payload.payment_method == PaymentMethod.vnpay:
        payment_url = vnpay.create_payment_url(order, client_ip or "127.0.0.1")

    order = await order_service.get_order(db, order.id)
    record_order_created(payload.payment_method.value)
    logger.info(
        "Order created",
        extra={
            "order_id": str(order.id),
            "total": breakdown.total,
            "payment_method": payload.payment_method.value,
            "guest": identity.is_guest,
        },
    )
    return ConfirmResult(
        order=order,
        payment_url=payment_url,
        replayed=False,
        notify_email=await _notify_email(db, identity, guest_email),
    )
