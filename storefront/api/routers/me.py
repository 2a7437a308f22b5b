from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_active_user
from storefront.db.operations import commit_async, rollback_async
from storefront.db.session_async import get_async_db
from storefront.models.user import User
from storefront.schemas.address import AddressCreate, AddressRead, AddressUpdate
from storefront.schemas.loyalty import PointsSummary
from storefront.schemas.user import UserRead
from storefront.services import address_service, loyalty_service

router = APIRouter(prefix="/me", tags=["me"])


@router.get("", response_model=UserRead)
async def read_me(current_user: User = Depends(get_current_active_user)):
    return current_user


@router.get("/points", response_model=PointsSummary)
async def read_points(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Depends(get_current_active_user),
):
    return await loyalty_service.list_ledger(db, current_user.id, page=page, limit=limit)


# --- Address book ---
@router.get("/addresses", response_model=List[AddressRead])
async def list_addresses(
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Depends(get_current_active_user),
):
    return await address_service.list_addresses(db, current_user.id)


@router.post("/addresses", response_model=AddressRead, status_code=status.HTTP_201_CREATED)
async def create_address(
    payload: AddressCreate,
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Depends(get_current_active_user),
):
    try:
        address = await address_service.create_address(db, current_user.id, payload)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise
    return address


@router.patch("/addresses/{address_id}", response_model=AddressRead)
async def update_address(
    address_id: UUID,
    payload: AddressUpdate,
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Depends(get_current_active_user),
):
    try:
        address = await address_service.update_address(db, current_user.id, address_id, payload)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise
    return address


@router.delete("/addresses/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_address(
    address_id: UUID,
    db: AsyncSession = Depends(get_async_db),
    current_user: User = Depends(get_current_active_user),
):
    try:
        await address_service.delete_address(db, current_user.id, address_id)
        await commit_async(db)
    except Exception:
        await rollback_async(db)
        raise
