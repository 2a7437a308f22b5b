from __future__ import annotations

import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.db.operations import guarded_update
from storefront.models.product import Product, ProductVariant
from storefront.services.exceptions import DomainValidationError, OutOfStockError

logger = get_logger(__name__)


def _target(product_id: uuid.UUID, variant_sku: str | None):
    """Stock lives on the variant when a SKU is given, otherwise on the product."""
    if variant_sku:
        return ProductVariant, (ProductVariant.product_id == product_id, ProductVariant.sku == variant_sku)
    return Product, (Product.id == product_id,)


async def available_stock(db: AsyncSession, product_id: uuid.UUID, variant_sku: str | None = None) -> int:
    model, where = _target(product_id, variant_sku)
    stock = await db.scalar(select(model.stock).where(*where))
    return int(stock or 0)


async def ensure_available(
    db: AsyncSession,
    product_id: uuid.UUID,
    variant_sku: str | None,
    quantity: int,
    *,
    name: str,
) -> None:
    available = await available_stock(db, product_id, variant_sku)
    if quantity > available:
        raise OutOfStockError(
            f"Only {available} left in stock for {name}",
            available=available,
            product_id=str(product_id),
        )


async def decrement_stock(
    db: AsyncSession,
    product_id: uuid.UUID,
    variant_sku: str | None,
    quantity: int,
    *,
    name: str,
) -> None:
    """Take ``quantity`` units; fails instead of overselling when stock ran out meanwhile."""
    if quantity <= 0:
        raise DomainValidationError("Quantity must be greater than 0")

    model, where = _target(product_id, variant_sku)
    stmt = (
        update(model)
        .where(*where, model.stock >= quantity)
        .values(stock=model.stock - quantity)
    )
    if not await guarded_update(db, stmt):
        available = await available_stock(db, product_id, variant_sku)
        raise OutOfStockError(
            f"Only {available} left in stock for {name}",
            available=available,
            product_id=str(product_id),
        )


async def restore_stock(
    db: AsyncSession,
    product_id: uuid.UUID | None,
    variant_sku: str | None,
    quantity: int,
) -> None:
    if product_id is None or quantity <= 0:
        return
    model, where = _target(product_id, variant_sku)
    stmt = update(model).where(*where).values(stock=model.stock + quantity)
    if not await guarded_update(db, stmt):
        logger.warning(
            "Could not restore stock, product no longer exists",
            extra={"product_id": str(product_id), "variant_sku": variant_sku, "quantity": quantity},
        )
