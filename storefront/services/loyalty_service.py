from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.db.operations import flush_async, guarded_update
from storefront.domain.enums import LedgerEntryType
from storefront.models.loyalty import PointsLedgerEntry
from storefront.models.user import User
from storefront.services.exceptions import PointsExceedBalanceError, ResourceNotFoundError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Redemption:
    total_points: int
    max_allowed: int
    applied_points: int
    remaining_points: int


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def compute_redemption(
    subtotal: int,
    requested_points: int,
    balance: int,
    *,
    cap_ratio: Decimal | None = None,
    payable: int | None = None,
) -> Redemption:
    """How many points a purchase may spend; 1 point = 1 VND.

    ``max_allowed`` is ``floor(subtotal * cap_ratio)``. Applied points are the
    smallest of the request, the cap and the balance (and ``payable`` when given).
    """
    ratio = settings.LOYALTY_REDEEM_CAP_RATIO if cap_ratio is None else cap_ratio
    balance = max(0, int(balance or 0))
    max_allowed = _floor(Decimal(max(0, subtotal)) * ratio)

    applied = max(0, min(int(requested_points or 0), max_allowed, balance))
    if payable is not None:
        applied = min(applied, max(0, payable))

    return Redemption(
        total_points=balance,
        max_allowed=max_allowed,
        applied_points=applied,
        remaining_points=balance - applied,
    )


def compute_earned_points(order_total: int, rate: Decimal | None = None) -> int:
    rate = settings.LOYALTY_EARN_RATE if rate is None else rate
    return _floor(Decimal(max(0, order_total)) * rate)


async def get_balance(db: AsyncSession, user_id: uuid.UUID | None) -> int:
    if user_id is None:
        return 0
    balance = await db.scalar(select(User.total_points).where(User.id == user_id))
    return int(balance or 0)


def _ledger_entry(
    user_id: uuid.UUID,
    points: int,
    entry_type: LedgerEntryType,
    order_id: uuid.UUID | None,
    description: str | None,
) -> PointsLedgerEntry:
    return PointsLedgerEntry(
        user_id=user_id,
        order_id=order_id,
        points=points,
        entry_type=entry_type,
        description=description,
    )


async def debit(
    db: AsyncSession,
    user_id: uuid.UUID,
    points: int,
    *,
    order_id: uuid.UUID | None = None,
    description: str | None = None,
) -> PointsLedgerEntry | None:
    """Spend points atomically; the balance can never go negative."""
    if points <= 0:
        return None

    stmt = (
        update(User)
        .where(User.id == user_id, User.total_points >= points)
        .values(total_points=User.total_points - points)
    )
    if not await guarded_update(db, stmt):
        balance = await get_balance(db, user_id)
        raise PointsExceedBalanceError(
            f"Requested {points} points but only {balance} are available"
        )

    entry = _ledger_entry(user_id, points, LedgerEntryType.redeem, order_id, description)
    db.add(entry)
    await flush_async(db, entry)
    logger.info("Points redeemed", extra={"user_id": str(user_id), "points": points, "order_id": str(order_id)})
    return entry


async def credit(
    db: AsyncSession,
    user_id: uuid.UUID,
    points: int,
    *,
    entry_type: LedgerEntryType = LedgerEntryType.earn,
    order_id: uuid.UUID | None = None,
    description: str | None = None,
) -> PointsLedgerEntry | None:
    if points <= 0:
        return None
    if entry_type == LedgerEntryType.redeem:
        raise ValueError("Use debit() for redemptions")

    stmt = (
        update(User)
        .where(User.id == user_id)
        .values(total_points=User.total_points + points)
    )
    if not await guarded_update(db, stmt):
        raise ResourceNotFoundError("User not found")

    entry = _ledger_entry(user_id, points, entry_type, order_id, description)
    db.add(entry)
    await flush_async(db, entry)
    logger.info(
        "Points credited",
        extra={"user_id": str(user_id), "points": points, "type": entry_type.value, "order_id": str(order_id)},
    )
    return entry


async def list_ledger(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    page: int = 1,
    limit: int = 20,
) -> dict:
    balance = await get_balance(db, user_id)
    total = await db.scalar(
        select(func.count()).select_from(PointsLedgerEntry).where(PointsLedgerEntry.user_id == user_id)
    ) or 0
    result = await db.execute(
        select(PointsLedgerEntry)
        .where(PointsLedgerEntry.user_id == user_id)
        .order_by(PointsLedgerEntry.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "total_points": balance,
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
        "limit": limit,
        "items": list(result.scalars().all()),
    }
