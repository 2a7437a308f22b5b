# tests/test_me.py
import pytest
from httpx import AsyncClient

from tests.helpers import SHIPPING, auth


@pytest.mark.asyncio
async def test_read_profile(client: AsyncClient, normal_user, user_token):
    resp = await client.get("/api/v1/me", headers=auth(user_token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["email"] == normal_user.email
    assert body["total_points"] == 0
    assert "hashed_password" not in body


@pytest.mark.asyncio
async def test_address_book(client: AsyncClient, user_token):
    headers = auth(user_token)
    first = await client.post("/api/v1/me/addresses", json={**SHIPPING, "label": "Home"}, headers=headers)
    assert first.status_code == 201, first.text
    assert first.json()["is_default"] is True

    office = {**SHIPPING, "label": "Office", "line1": "88 Nguyen Hue", "is_default": True}
    second = await client.post("/api/v1/me/addresses", json=office, headers=headers)
    assert second.status_code == 201
    assert second.json()["is_default"] is True

    listing = await client.get("/api/v1/me/addresses", headers=headers)
    assert [a["label"] for a in listing.json()] == ["Office", "Home"]
    assert [a["is_default"] for a in listing.json()] == [True, False]

    patched = await client.patch(
        f"/api/v1/me/addresses/{first.json()['id']}", json={"phone": "0909000111"}, headers=headers
    )
    assert patched.status_code == 200
    assert patched.json()["phone"] == "0909000111"

    deleted = await client.delete(f"/api/v1/me/addresses/{first.json()['id']}", headers=headers)
    assert deleted.status_code == 204
    missing = await client.delete(f"/api/v1/me/addresses/{first.json()['id']}", headers=headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_addresses_are_private(client: AsyncClient, user_token, rich_token):
    created = await client.post("/api/v1/me/addresses", json=SHIPPING, headers=auth(user_token))
    address_id = created.json()["id"]

    resp = await client.patch(f"/api/v1/me/addresses/{address_id}", json={"label": "Mine"}, headers=auth(rich_token))
    assert resp.status_code == 404
    assert (await client.get("/api/v1/me/addresses", headers=auth(rich_token))).json() == []


@pytest.mark.asyncio
async def test_profile_requires_token(client: AsyncClient):
    resp = await client.get("/api/v1/me")
    assert resp.status_code == 401
