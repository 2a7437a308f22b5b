from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Security, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_cart_identity, get_current_user
from storefront.core.config import settings
from storefront.db.operations import commit_async, rollback_async
from storefront.db.session_async import get_async_db
from storefront.models.cart import Cart
from storefront.models.user import User
from storefront.schemas.cart import (
    BulkAddResponse,
    CartBulkAdd,
    CartCount,
    CartItemCreate,
    CartItemUpdate,
    CartMergeRequest,
    CartRead,
    CartWarning,
)
from storefront.services import cart_service
from storefront.services.cart_service import CartIdentity
from storefront.services.exceptions import DomainValidationError

router = APIRouter(prefix="/cart", tags=["cart"])


def _cart_read(cart: Cart | None, identity: CartIdentity, warnings: list[CartWarning] | None = None) -> CartRead:
    if cart is None:
        return CartRead(user_id=identity.user_id, guest_token=identity.guest_token, currency=settings.CURRENCY)
    data = CartRead.model_validate(cart)
    return data.model_copy(update={"warnings": warnings or []})


@router.get("", response_model=CartRead)
async def get_cart(
    db: AsyncSession = Depends(get_async_db),
    identity: CartIdentity = Depends(get_cart_identity),
):
    cart = await cart_service.get_cart(db, identity)
    return _cart_read(cart, identity)


@router.get("/count", response_model=CartCount)
async def get_cart_count(
    db: AsyncSession = Depends(get_async_db),
    identity: CartIdentity = Depends(get_cart_identity),
):
    return CartCount(count=await cart_service.count_items(db, identity))


@router.post("/items", response_model=CartRead, status_code=status.HTTP_201_CREATED)
async def add_cart_item(
    item: CartItemCreate,
    db: AsyncSession = Depends(get_async_db),
    identity: CartIdentity = Depends(get_cart_identity),
):
    try:
        cart, warnings = await cart_service.add_item(db, identity, item)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise
    return _cart_read(cart, identity, warnings)


@router.post("/items/bulk", response_model=BulkAddResponse)
async def bulk_add_items(
    payload: CartBulkAdd,
    db: AsyncSession = Depends(get_async_db),
    identity: CartIdentity = Depends(get_cart_identity),
):
    try:
        cart, results, warnings = await cart_service.bulk_add(db, identity, payload.items)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise
    return BulkAddResponse(results=results, cart=_cart_read(cart, identity), warnings=warnings)


@router.patch("/items/{item_id}", response_model=CartRead)
@router.put("/items/{item_id}", response_model=CartRead, include_in_schema=False)
async def update_cart_item(
    item_id: UUID,
    payload: CartItemUpdate,
    db: AsyncSession = Depends(get_async_db),
    identity: CartIdentity = Depends(get_cart_identity),
):
    try:
        cart, warnings = await cart_service.update_item(db, identity, item_id, payload.quantity)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise
    return _cart_read(cart, identity, warnings)


@router.delete("/items/{item_id}", response_model=CartRead)
async def remove_cart_item(
    item_id: UUID,
    db: AsyncSession = Depends(get_async_db),
    identity: CartIdentity = Depends(get_cart_identity),
):
    try:
        cart = await cart_service.remove_item(db, identity, item_id)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise
    return _cart_read(cart, identity)


@router.delete("", response_model=CartRead)
async def clear_cart(
    db: AsyncSession = Depends(get_async_db),
    identity: CartIdentity = Depends(get_cart_identity),
):
    try:
        cart = await cart_service.clear_cart(db, identity)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise
    return _cart_read(cart, identity)


@router.post("/merge", response_model=CartRead)
async def merge_guest_cart(
    request: Request,
    payload: CartMergeRequest | None = None,
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Security(get_current_user, scopes=["users:me"]),
):
    """Called by the client right after sign-in to fold the guest cart into the user's."""
    guest_token = (payload.guest_token if payload else None) or request.headers.get(settings.GUEST_TOKEN_HEADER)
    if not guest_token:
        raise DomainValidationError("guest_token is required")

    identity = CartIdentity(user_id=current_user.id)
    try:
        cart, warnings = await cart_service.merge_guest_cart(db, current_user.id, guest_token)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise
    return _cart_read(cart, identity, warnings)
