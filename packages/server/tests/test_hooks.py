"""
Identity provider webhooks.
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from app.core.config import get_settings
from app.repositories import UserRepository
from conftest import make_identity


def _payload(identity) -> dict:
    return {"identity": identity.model_dump(mode="json"), "flow": {"id": "flow-1", "type": "browser"}}


class TestWebhooks:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("hook", ["after-registration", "after-login", "after-verification"])
    async def test_each_hook_upserts_user(self, client: AsyncClient, session_factory, hook):
        identity = make_identity("a@example.com")
        response = await client.post(f"/hooks/{hook}", json=_payload(identity))
        assert response.status_code == 200
        assert response.json() == {"status": "success"}

        async with session_factory() as session:
            assert await UserRepository(session).count() == 1

    @pytest.mark.asyncio
    async def test_login_sets_last_login(self, client: AsyncClient, session_factory):
        identity = make_identity("a@example.com")
        await client.post("/hooks/after-registration", json=_payload(identity))
        await client.post("/hooks/after-login", json=_payload(identity))

        async with session_factory() as session:
            user = (await UserRepository(session).list_all())[0]
            assert user.last_login is not None

    @pytest.mark.asyncio
    async def test_identity_without_email(self, client: AsyncClient):
        identity = make_identity("a@example.com")
        identity.traits.pop("email")
        response = await client.post("/hooks/after-registration", json=_payload(identity))
        assert response.status_code == 400
        assert response.json()["code"] == "BAD_REQUEST"

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, client: AsyncClient):
        await client.post("/hooks/after-registration", json=_payload(make_identity("a@example.com")))
        response = await client.post("/hooks/after-registration", json=_payload(make_identity("a@example.com")))
        assert response.status_code == 409


class TestWebhookKey:

    @pytest.fixture(autouse=True)
    def webhook_key(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "webhook_api_key", "hook-secret")

    @pytest.mark.asyncio
    async def test_missing_key_rejected(self, client: AsyncClient):
        response = await client.post("/hooks/after-registration", json=_payload(make_identity("a@example.com")))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_matching_key_accepted(self, client: AsyncClient):
        response = await client.post(
            "/hooks/after-registration",
            json=_payload(make_identity("a@example.com")),
            headers={"X-Webhook-Key": "hook-secret"},
        )
        assert response.status_code == 200
