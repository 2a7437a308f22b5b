from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.logging import get_logger
from storefront.db.operations import flush_async
from storefront.domain.enums import CartWarningType
from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product, ProductVariant
from storefront.schemas.cart import CartItemCreate, CartWarning
from storefront.services.exceptions import (
    DomainValidationError,
    OutOfStockError,
    ProductUnavailableError,
    ResourceNotFoundError,
    ServiceError,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class CartIdentity:
    """Who owns a cart: a signed-in user or an opaque guest token, never both."""

    user_id: uuid.UUID | None = None
    guest_token: str | None = None

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def scope(self) -> str:
        if self.user_id is not None:
            return f"user:{self.user_id}"
        return f"guest:{self.guest_token}"


@dataclass(frozen=True)
class Offer:
    """Current catalog data for a product (or one of its variants)."""

    product: Product
    variant: ProductVariant | None
    price: int
    stock: int
    name: str
    image_url: str | None

    @property
    def max_per_order(self) -> int | None:
        return self.product.max_per_order


def _as_uuid(value, field: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise DomainValidationError(f"Invalid UUID for {field}") from exc


def _cart_stmt(identity: CartIdentity):
    stmt = select(Cart).options(selectinload(Cart.items)).execution_options(populate_existing=True)
    if identity.user_id is not None:
        return stmt.where(Cart.user_id == identity.user_id)
    return stmt.where(Cart.guest_token == identity.guest_token)


async def get_cart(db: AsyncSession, identity: CartIdentity) -> Cart | None:
    if identity.user_id is None and not identity.guest_token:
        return None
    result = await db.execute(_cart_stmt(identity))
    return result.scalars().first()


async def get_or_create_cart(db: AsyncSession, identity: CartIdentity) -> Cart:
    cart = await get_cart(db, identity)
    if cart:
        return cart
    if identity.user_id is None and not identity.guest_token:
        raise DomainValidationError("A guest token or an authenticated user is required")

    cart = Cart(
        user_id=identity.user_id,
        guest_token=None if identity.user_id is not None else identity.guest_token,
    )
    db.add(cart)
    await flush_async(db, cart)
    return await _reload(db, cart)


async def _reload(db: AsyncSession, cart: Cart) -> Cart:
    result = await db.execute(
        select(Cart)
        .options(selectinload(Cart.items))
        .where(Cart.id == cart.id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().one()


async def resolve_offer(db: AsyncSession, product_id: uuid.UUID, variant_sku: str | None = None) -> Offer:
    product = await db.get(Product, _as_uuid(product_id, "product_id"))
    if not product:
        raise ResourceNotFoundError("Product not found")
    if not product.is_active:
        raise ProductUnavailableError(f"{product.name} is no longer available")

    if not variant_sku:
        return Offer(
            product=product,
            variant=None,
            price=product.price,
            stock=product.stock,
            name=product.name,
            image_url=product.image_url,
        )

    result = await db.execute(
        select(ProductVariant).where(
            ProductVariant.product_id == product.id,
            ProductVariant.sku == variant_sku.upper(),
        )
    )
    variant = result.scalars().first()
    if not variant:
        raise ResourceNotFoundError("Variant not found")
    if not variant.is_active:
        raise ProductUnavailableError(f"{product.name} ({variant.name}) is no longer available")

    return Offer(
        product=product,
        variant=variant,
        price=variant.price,
        stock=variant.stock,
        name=f"{product.name} - {variant.name}",
        image_url=product.image_url,
    )


def _warning(kind: CartWarningType, offer: Offer, allowed: int, message: str) -> CartWarning:
    return CartWarning(
        type=kind,
        product_id=offer.product.id,
        variant_sku=offer.variant.sku if offer.variant else None,
        message=message,
        allowed_qty=allowed,
    )


def apply_limits(
    offer: Offer,
    desired: int,
    warnings: list[CartWarning],
    *,
    cap_at_stock: bool = False,
) -> int:
    """Clamp ``desired`` to the per-order maximum, then check stock.

    Exceeding ``max_per_order`` always caps with a warning. Exceeding stock
    raises ``OutOfStockError`` unless ``cap_at_stock`` is set (guest cart merge).
    """
    quantity = desired
    limit = offer.max_per_order
    if limit and quantity > limit:
        quantity = limit
        warnings.append(
            _warning(
                CartWarningType.max_per_order,
                offer,
                limit,
                f"{offer.name}: at most {limit} per order",
            )
        )

    if quantity > offer.stock:
        if not cap_at_stock:
            raise OutOfStockError(
                f"Only {offer.stock} left in stock for {offer.name}",
                available=offer.stock,
                product_id=str(offer.product.id),
            )
        quantity = offer.stock
        warnings.append(
            _warning(
                CartWarningType.stock_cap,
                offer,
                offer.stock,
                f"{offer.name}: only {offer.stock} left in stock",
            )
        )
    return quantity


def _find_line(cart: Cart, product_id: uuid.UUID, variant_sku: str | None) -> CartItem | None:
    for item in cart.items:
        if item.product_id == product_id and (item.variant_sku or None) == (variant_sku or None):
            return item
    return None


def _get_item(cart: Cart, item_id: uuid.UUID) -> CartItem | None:
    for item in cart.items:
        if item.id == item_id:
            return item
    return None


async def _add_line(
    db: AsyncSession,
    cart: Cart,
    payload: CartItemCreate,
    warnings: list[CartWarning],
) -> int:
    """Add to the matching line (or a new one); returns the quantity actually added."""
    if payload.quantity < 1:
        raise DomainValidationError("Quantity must be at least 1")

    offer = await resolve_offer(db, payload.product_id, payload.variant_sku)
    sku = offer.variant.sku if offer.variant else None
    existing = _find_line(cart, offer.product.id, sku)
    current = existing.quantity if existing else 0

    quantity = apply_limits(offer, current + payload.quantity, warnings)
    added = quantity - current
    if added <= 0:
        return 0

    if existing:
        existing.quantity = quantity
    else:
        item = CartItem(
            cart_id=cart.id,
            product_id=offer.product.id,
            variant_sku=sku,
            quantity=quantity,
            price_at_add=offer.price,
            name_snapshot=offer.name,
            image_snapshot=offer.image_url,
        )
        db.add(item)
        cart.items.append(item)
    await flush_async(db)
    return added


# --- Public operations -------------------------------------------------------
async def add_item(
    db: AsyncSession,
    identity: CartIdentity,
    payload: CartItemCreate,
) -> tuple[Cart, list[CartWarning]]:
    cart = await get_or_create_cart(db, identity)
    warnings: list[CartWarning] = []
    await _add_line(db, cart, payload, warnings)
    return await _reload(db, cart), warnings


async def update_item(
    db: AsyncSession,
    identity: CartIdentity,
    item_id,
    quantity: int,
) -> tuple[Cart, list[CartWarning]]:
    cart = await get_cart(db, identity)
    item = _get_item(cart, _as_uuid(item_id, "item_id")) if cart else None
    if not item:
        raise ResourceNotFoundError("Cart item not found")

    warnings: list[CartWarning] = []
    if quantity < 1:
        await db.delete(item)
        await flush_async(db)
        return await _reload(db, cart), warnings

    offer = await resolve_offer(db, item.product_id, item.variant_sku)
    item.quantity = apply_limits(offer, quantity, warnings)
    await flush_async(db)
    return await _reload(db, cart), warnings


async def remove_item(db: AsyncSession, identity: CartIdentity, item_id) -> Cart:
    cart = await get_cart(db, identity)
    item = _get_item(cart, _as_uuid(item_id, "item_id")) if cart else None
    if not item:
        raise ResourceNotFoundError("Cart item not found")

    await db.delete(item)
    await flush_async(db)
    return await _reload(db, cart)


async def clear_cart(db: AsyncSession, identity: CartIdentity) -> Cart | None:
    cart = await get_cart(db, identity)
    if not cart:
        return None
    await db.execute(delete(CartItem).where(CartItem.cart_id == cart.id))
    await flush_async(db)
    return await _reload(db, cart)


async def count_items(db: AsyncSession, identity: CartIdentity) -> int:
    cart = await get_cart(db, identity)
    return cart.count if cart else 0


async def bulk_add(
    db: AsyncSession,
    identity: CartIdentity,
    items: list[CartItemCreate],
) -> tuple[Cart, list[dict], list[CartWarning]]:
    """Attempt every item independently; one bad item never aborts the others."""
    cart = await get_or_create_cart(db, identity)
    warnings: list[CartWarning] = []
    results: list[dict] = []

    for payload in items:
        result = {"product_id": payload.product_id, "variant_sku": payload.variant_sku}
        try:
            added = await _add_line(db, cart, payload, warnings)
        except ServiceError as exc:
            results.append({**result, "ok": False, "added_qty": 0, "reason": _bulk_reason(exc)})
            continue
        results.append({**result, "ok": True, "added_qty": added})

    return await _reload(db, cart), results, warnings


def _bulk_reason(exc: ServiceError) -> str:
    if isinstance(exc, ResourceNotFoundError):
        return "not_found"
    if isinstance(exc, ProductUnavailableError):
        return "unavailable"
    if isinstance(exc, OutOfStockError):
        return "out_of_stock"
    return "invalid"


async def merge_guest_cart(
    db: AsyncSession,
    user_id: uuid.UUID,
    guest_token: str,
) -> tuple[Cart, list[CartWarning]]:
    """Move a guest cart into the user's cart after sign-in.

    Matching lines are summed and capped at stock and per-order limits with
    warnings; inactive or deleted products are dropped. The guest cart is deleted.
    """
    user_cart = await get_or_create_cart(db, CartIdentity(user_id=user_id))
    guest_cart = await get_cart(db, CartIdentity(guest_token=guest_token))
    warnings: list[CartWarning] = []
    if not guest_cart or guest_cart.id == user_cart.id:
        return user_cart, warnings

    for guest_item in list(guest_cart.items):
        try:
            offer = await resolve_offer(db, guest_item.product_id, guest_item.variant_sku)
        except (ResourceNotFoundError, ProductUnavailableError):
            logger.info(
                "Skipping unavailable product during cart merge",
                extra={"product_id": str(guest_item.product_id), "user_id": str(user_id)},
            )
            continue

        existing = _find_line(user_cart, guest_item.product_id, guest_item.variant_sku)
        current = existing.quantity if existing else 0
        quantity = apply_limits(offer, current + guest_item.quantity, warnings, cap_at_stock=True)
        if quantity <= current:
            continue

        if existing:
            existing.quantity = quantity
        else:
            item = CartItem(
                cart_id=user_cart.id,
                product_id=guest_item.product_id,
                variant_sku=guest_item.variant_sku,
                quantity=quantity,
                price_at_add=guest_item.price_at_add,
                name_snapshot=guest_item.name_snapshot,
                image_snapshot=guest_item.image_snapshot,
            )
            db.add(item)
            user_cart.items.append(item)

    await db.delete(guest_cart)
    await flush_async(db)
    logger.info("Guest cart merged", extra={"user_id": str(user_id), "warnings": len(warnings)})
    return await _reload(db, user_cart), warnings
