# storefront/db/operations.py
"""Common async session helpers."""

from typing import Any

from sqlalchemy import Update
from sqlalchemy.ext.asyncio import AsyncSession


async def commit_async(session: AsyncSession) -> None:
    await session.commit()


async def rollback_async(session: AsyncSession) -> None:
    if session.in_transaction():
        await session.rollback()


async def flush_async(session: AsyncSession, *objects: Any) -> None:
    """Flush pending changes; ``objects`` only document what the caller expects written."""
    await session.flush()


async def refresh_async(session: AsyncSession, *instances: Any, attribute_names: list[str] | None = None) -> None:
    for instance in instances:
        if attribute_names:
            await session.refresh(instance, attribute_names=attribute_names)
        else:
            await session.refresh(instance)


async def guarded_update(session: AsyncSession, stmt: Update) -> bool:
    """Run a conditional UPDATE and report whether exactly one row matched.

    Used for compare-and-set writes (coupon slots, point balances, stock) so
    that concurrent transactions cannot both pass a read-then-write check.
    """
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount == 1
