"""
Provider adapters against httpx.MockTransport.
"""

from __future__ import annotations

import base64
import json

import httpx
import pytest

from app.clients.identity import (
    CredentialRejected,
    IdentityClient,
    IdentityNotFound,
    MalformedResponse,
    ProviderUnavailable,
)
from app.clients.oauth2 import OAuth2ClientNotFound, OAuth2ProviderClient

IDENTITY_ID = "9f1c2d3e-4b5a-4c6d-8e7f-0a1b2c3d4e5f"

IDENTITY = {
    "id": IDENTITY_ID,
    "schema_id": "default",
    "state": "active",
    "traits": {"email": "a@example.com", "name": {"first": "Ada", "last": "L"}},
    "verifiable_addresses": [{"id": "x", "value": "a@example.com", "verified": True, "via": "email", "status": "completed"}],
    "credentials": {"oidc": {"type": "oidc", "identifiers": ["google:123"], "version": 0}},
}

SESSION = {"id": "sess-1", "active": True, "identity": IDENTITY, "authenticator_assurance_level": "aal1"}


def identity_client(handler) -> IdentityClient:
    return IdentityClient("http://kratos:4433", "http://kratos:4434", transport=httpx.MockTransport(handler))


def oauth2_client(handler) -> OAuth2ProviderClient:
    return OAuth2ProviderClient("http://hydra:4444", "http://hydra:4445", transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# Identity provider
# ---------------------------------------------------------------------------

class TestIdentityClient:

    @pytest.mark.asyncio
    async def test_session_token_forwarded(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["token"] = request.headers.get("X-Session-Token")
            return httpx.Response(200, json=SESSION)

        client = identity_client(handler)
        session = await client.to_session(session_token="tok")
        await client.close()

        assert seen == {"url": "http://kratos:4433/sessions/whoami", "token": "tok"}
        assert session.identity.email == "a@example.com"
        assert session.identity.oidc_identifiers() == ["google:123"]
        assert session.identity.names == ("Ada", "L")

    @pytest.mark.asyncio
    async def test_cookie_forwarded(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Cookie"] == "ory_kratos_session=abc"
            assert "X-Session-Token" not in request.headers
            return httpx.Response(200, json=SESSION)

        session = await identity_client(handler).to_session(cookie="ory_kratos_session=abc")
        assert session.id == "sess-1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejected(self, status):
        client = identity_client(lambda request: httpx.Response(status, json={"error": {}}))
        with pytest.raises(CredentialRejected):
            await client.to_session(session_token="tok")

    @pytest.mark.asyncio
    async def test_inactive_session_rejected(self):
        client = identity_client(lambda request: httpx.Response(200, json={**SESSION, "active": False}))
        with pytest.raises(CredentialRejected):
            await client.to_session(session_token="tok")

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        client = identity_client(lambda request: httpx.Response(503))
        with pytest.raises(ProviderUnavailable):
            await client.to_session(session_token="tok")

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderUnavailable):
            await identity_client(handler).to_session(session_token="tok")

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        client = identity_client(lambda request: httpx.Response(200, json={"unexpected": True}))
        with pytest.raises(MalformedResponse):
            await client.to_session(session_token="tok")

    @pytest.mark.asyncio
    async def test_get_identity(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/admin/identities/{IDENTITY_ID}"
            assert request.url.params["include_credential"] == "oidc"
            return httpx.Response(200, json=IDENTITY)

        identity = await identity_client(handler).get_identity(IDENTITY_ID)
        assert identity.id == IDENTITY_ID

    @pytest.mark.asyncio
    async def test_get_identity_not_found(self):
        client = identity_client(lambda request: httpx.Response(404, json={"error": {}}))
        with pytest.raises(IdentityNotFound):
            await client.get_identity(IDENTITY_ID)

    @pytest.mark.asyncio
    async def test_list_identities_follows_pages(self):
        second = {**IDENTITY, "id": "1f1c2d3e-4b5a-4c6d-8e7f-0a1b2c3d4e5f"}

        def handler(request: httpx.Request) -> httpx.Response:
            if "page_token" not in request.url.params:
                return httpx.Response(
                    200,
                    json=[IDENTITY],
                    headers={"Link": '</admin/identities?page_size=250&page_token=next>; rel="next"'},
                )
            return httpx.Response(200, json=[second])

        identities = await identity_client(handler).list_identities()
        assert [i.id for i in identities] == [IDENTITY_ID, second["id"]]

    @pytest.mark.asyncio
    async def test_disable_session(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.path))
            return httpx.Response(204)

        await identity_client(handler).disable_session("sess-1")
        assert calls == [("DELETE", "/admin/sessions/sess-1")]


# ---------------------------------------------------------------------------
# OAuth2 provider
# ---------------------------------------------------------------------------

class TestOAuth2Client:

    @pytest.mark.asyncio
    async def test_create_client(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"client_id": "m2m_x", "client_name": "n", "scope": "a b"})

        remote = await oauth2_client(handler).create_client("m2m_x", "secret", "n", "a b", {"org_id": "o"})
        assert remote.client_id == "m2m_x"
        assert seen["path"] == "/admin/clients"
        assert seen["body"]["grant_types"] == ["client_credentials"]
        assert seen["body"]["client_secret"] == "secret"
        assert seen["body"]["metadata"] == {"org_id": "o"}

    @pytest.mark.asyncio
    async def test_set_client_secret_replaces_client(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.method)
            if request.method == "GET":
                return httpx.Response(200, json={"client_id": "m2m_x", "client_name": "n", "scope": "a"})
            body = json.loads(request.content)
            assert body["client_secret"] == "new"
            assert body["client_name"] == "n"
            return httpx.Response(200, json={"client_id": "m2m_x", "client_name": "n", "scope": "a"})

        await oauth2_client(handler).set_client_secret("m2m_x", "new")
        assert calls == ["GET", "PUT"]

    @pytest.mark.asyncio
    async def test_create_with_unreadable_body(self):
        client = oauth2_client(lambda request: httpx.Response(201, content=b"<html>ok</html>"))
        with pytest.raises(MalformedResponse) as exc_info:
            await client.create_client("m2m_x", "secret", "n", "a b")
        assert exc_info.value.status_code == 201

    @pytest.mark.asyncio
    async def test_delete_missing_client(self):
        client = oauth2_client(lambda request: httpx.Response(404, json={"error": "not_found"}))
        with pytest.raises(OAuth2ClientNotFound):
            await client.delete_client("m2m_x")

    @pytest.mark.asyncio
    async def test_exchange_uses_basic_auth(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/oauth2/token"
            expected = base64.b64encode(b"m2m_x:secret").decode()
            assert request.headers["Authorization"] == f"Basic {expected}"
            assert b"grant_type=client_credentials" in request.content
            return httpx.Response(
                200, json={"access_token": "at", "token_type": "bearer", "expires_in": 3599, "scope": "a"}
            )

        grant = await oauth2_client(handler).exchange_client_credentials("m2m_x", "secret", "a")
        assert grant.access_token == "at"
        assert grant.expires_in == 3599

    @pytest.mark.asyncio
    async def test_exchange_rejected(self):
        client = oauth2_client(lambda request: httpx.Response(401, json={"error": "invalid_client"}))
        with pytest.raises(CredentialRejected):
            await client.exchange_client_credentials("m2m_x", "wrong")

    @pytest.mark.asyncio
    async def test_introspect(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/admin/oauth2/introspect"
            assert b"token=at" in request.content
            return httpx.Response(200, json={"active": True, "client_id": "m2m_x", "exp": 1_900_000_000})

        result = await oauth2_client(handler).introspect("at")
        assert result.active
        assert result.expires_at.year == 2030
