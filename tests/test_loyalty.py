# tests/test_loyalty.py
import warnings

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SADeprecationWarning

from storefront.domain.enums import LedgerEntryType
from storefront.models.loyalty import PointsLedgerEntry
from storefront.services import loyalty_service
from storefront.services.exceptions import PointsExceedBalanceError
from tests.helpers import auth


@pytest.mark.asyncio
async def test_debit_and_credit_keep_ledger(async_db_session, rich_user):
    entry = await loyalty_service.debit(async_db_session, rich_user.id, 250_000, description="Checkout")
    assert entry.entry_type == LedgerEntryType.redeem
    assert await loyalty_service.get_balance(async_db_session, rich_user.id) == 750_000

    await loyalty_service.credit(
        async_db_session, rich_user.id, 50_000, entry_type=LedgerEntryType.refund, description="Cancelled"
    )
    assert await loyalty_service.get_balance(async_db_session, rich_user.id) == 800_000

    rows = (
        await async_db_session.execute(
            select(PointsLedgerEntry.entry_type, PointsLedgerEntry.points).where(
                PointsLedgerEntry.user_id == rich_user.id
            )
        )
    ).all()
    assert sorted((t.value, p) for t, p in rows) == [("redeem", 250_000), ("refund", 50_000)]


@pytest.mark.asyncio
async def test_debit_never_overdraws(async_db_session, normal_user):
    with pytest.raises(PointsExceedBalanceError):
        await loyalty_service.debit(async_db_session, normal_user.id, 1)
    assert await loyalty_service.get_balance(async_db_session, normal_user.id) == 0


@pytest.mark.asyncio
async def test_zero_points_are_a_noop(async_db_session, rich_user):
    assert await loyalty_service.debit(async_db_session, rich_user.id, 0) is None
    assert await loyalty_service.credit(async_db_session, rich_user.id, 0) is None


@pytest.mark.asyncio
async def test_credit_rejects_redeem_type(async_db_session, rich_user):
    with pytest.raises(ValueError):
        await loyalty_service.credit(async_db_session, rich_user.id, 10, entry_type=LedgerEntryType.redeem)


@pytest.mark.asyncio
async def test_guest_balance_is_zero(async_db_session):
    assert await loyalty_service.get_balance(async_db_session, None) == 0


@pytest.mark.asyncio
async def test_points_endpoint(client, rich_token):
    resp = await client.get("/api/v1/me/points", headers=auth(rich_token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_points"] == 1_000_000
    assert body["total"] == 0
    assert body["items"] == []

    anonymous = await client.get("/api/v1/me/points")
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_ledger_writes_emit_no_deprecation_warnings(async_db_session, rich_user):
    with warnings.catch_warnings():
        warnings.simplefilter("error", SADeprecationWarning)
        await loyalty_service.debit(async_db_session, rich_user.id, 10_000)
        await loyalty_service.credit(async_db_session, rich_user.id, 5_000)
    assert await loyalty_service.get_balance(async_db_session, rich_user.id) == 995_000
