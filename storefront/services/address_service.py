from __future__ import annotations

import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.db.operations import flush_async, refresh_async
from storefront.models.user import Address
from storefront.schemas.address import AddressCreate, AddressUpdate
from storefront.services.exceptions import ResourceNotFoundError


async def list_addresses(db: AsyncSession, user_id: uuid.UUID) -> list[Address]:
    result = await db.execute(
        select(Address)
        .where(Address.user_id == user_id)
        .order_by(Address.is_default.desc(), Address.created_at)
    )
    return list(result.scalars().all())


async def get_address(db: AsyncSession, user_id: uuid.UUID, address_id: uuid.UUID) -> Address:
    address = await db.scalar(select(Address).where(Address.id == address_id, Address.user_id == user_id))
    if not address:
        raise ResourceNotFoundError("Address not found")
    return address


async def _clear_default(db: AsyncSession, user_id: uuid.UUID, keep: uuid.UUID | None = None) -> None:
    stmt = update(Address).where(Address.user_id == user_id, Address.is_default.is_(True))
    if keep is not None:
        stmt = stmt.where(Address.id != keep)
    await db.execute(stmt.values(is_default=False).execution_options(synchronize_session=False))


async def create_address(db: AsyncSession, user_id: uuid.UUID, payload: AddressCreate) -> Address:
    existing = await list_addresses(db, user_id)
    # The first address becomes the default one
    is_default = payload.is_default or not existing
    if is_default:
        await _clear_default(db, user_id)

    address = Address(user_id=user_id, **payload.model_dump(exclude={"is_default"}), is_default=is_default)
    db.add(address)
    await flush_async(db, address)
    await refresh_async(db, address)
    return address


async def update_address(
    db: AsyncSession,
    user_id: uuid.UUID,
    address_id: uuid.UUID,
    payload: AddressUpdate,
) -> Address:
    address = await get_address(db, user_id, address_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("is_default"):
        await _clear_default(db, user_id, keep=address.id)
    for field, value in data.items():
        if value is None and field not in ("line2", "district", "ward"):
            continue
        setattr(address, field, value)
    await flush_async(db, address)
    await refresh_async(db, address)
    return address


async def delete_address(db: AsyncSession, user_id: uuid.UUID, address_id: uuid.UUID) -> None:
    address = await get_address(db, user_id, address_id)
    await db.delete(address)
    await flush_async(db)
