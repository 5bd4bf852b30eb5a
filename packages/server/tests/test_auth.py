"""
Session resolution, verification policy and the verification gate.
"""

from __future__ import annotations

import uuid

import bcrypt
import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from starlette.requests import Request

from app.clients.identity import ProviderUnavailable
from app.core.auth import SessionResolver, VerificationPolicy, hash_secret, is_verified, verify_secret
from app.repositories import UserRepository
from conftest import FakeIdentityClient, make_identity

COOKIE = "ory_kratos_session"


def _request(authorization: str | None = None, cookie: str | None = None) -> Request:
    headers = []
    if authorization is not None:
        headers.append((b"authorization", authorization.encode()))
    if cookie is not None:
        headers.append((b"cookie", f"{COOKIE}={cookie}".encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


# ---------------------------------------------------------------------------
# Session resolver
# ---------------------------------------------------------------------------

class TestSessionResolver:

    @pytest.mark.asyncio
    async def test_bearer_token(self):
        fake = FakeIdentityClient()
        session = fake.login(make_identity("a@example.com"), token="tok-a")
        resolved = await SessionResolver(fake, COOKIE).resolve(_request("Bearer tok-a"))
        assert resolved is not None
        assert resolved.id == session.id

    @pytest.mark.asyncio
    async def test_bearer_checked_before_cookie(self):
        fake = FakeIdentityClient()
        bearer = fake.login(make_identity("bearer@example.com"), token="tok-b")
        fake.login(make_identity("cookie@example.com"), cookie="cookie-c")
        resolved = await SessionResolver(fake, COOKIE).resolve(_request("Bearer tok-b", "cookie-c"))
        assert resolved.id == bearer.id

    @pytest.mark.asyncio
    async def test_rejected_bearer_falls_back_to_cookie(self):
        fake = FakeIdentityClient()
        cookie_session = fake.login(make_identity("cookie@example.com"), cookie="cookie-c")
        resolved = await SessionResolver(fake, COOKIE).resolve(_request("Bearer stale", "cookie-c"))
        assert resolved.id == cookie_session.id

    @pytest.mark.asyncio
    async def test_no_credentials(self):
        assert await SessionResolver(FakeIdentityClient(), COOKIE).resolve(_request()) is None

    @pytest.mark.asyncio
    async def test_non_bearer_scheme_ignored(self):
        fake = FakeIdentityClient()
        fake.login(make_identity("a@example.com"), token="tok-a")
        assert await SessionResolver(fake, COOKIE).resolve(_request("Basic tok-a")) is None

    @pytest.mark.asyncio
    async def test_provider_outage_is_unauthenticated(self):
        fake = FakeIdentityClient()
        fake.login(make_identity("a@example.com"), token="tok-a")
        fake.error = ProviderUnavailable("down")
        assert await SessionResolver(fake, COOKIE).resolve(_request("Bearer tok-a")) is None


# ---------------------------------------------------------------------------
# Verification policy
# ---------------------------------------------------------------------------

class TestVerificationPolicy:

    def test_sole_user_is_verified(self):
        identity = make_identity("a@example.com", verified=False)
        assert is_verified(identity, 0)
        assert is_verified(identity, 1)

    def test_unverified_email(self):
        assert not is_verified(make_identity("a@example.com", verified=False), 2)

    def test_verified_email(self):
        assert is_verified(make_identity("a@example.com", verified=True), 2)

    def test_no_addresses(self):
        identity = make_identity("a@example.com").model_copy(update={"verifiable_addresses": []})
        assert not is_verified(identity, 5)

    def test_google_oidc_is_verified(self):
        identity = make_identity("a@example.com", verified=False, oidc=["google:1234567890"])
        assert is_verified(identity, 5)

    def test_other_oidc_provider_not_enough(self):
        identity = make_identity("a@example.com", verified=False, oidc=["github:42"])
        assert not is_verified(identity, 5)

    def test_verified_address_on_other_channel(self):
        identity = make_identity("a@example.com", verified=True)
        identity.verifiable_addresses[0].via = "sms"
        assert not is_verified(identity, 5)

    @pytest.mark.asyncio
    async def test_policy_counts_users(self, db):
        # Empty table: the caller is the bootstrap user.
        identity = make_identity("a@example.com", verified=False)
        assert await VerificationPolicy().evaluate(identity, db)

    @pytest.mark.asyncio
    async def test_count_failure_propagates(self, db, monkeypatch):
        async def failing_count(self):
            raise OperationalError("SELECT count(*) FROM users", {}, Exception("connection reset"))

        monkeypatch.setattr(UserRepository, "count", failing_count)
        identity = make_identity("a@example.com", verified=False)
        with pytest.raises(OperationalError):
            await VerificationPolicy().evaluate(identity, db)


# ---------------------------------------------------------------------------
# Secret hashing
# ---------------------------------------------------------------------------

def test_secret_hash_roundtrip():
    hashed = hash_secret("s3cret")
    assert hashed.startswith("$2")
    assert verify_secret("s3cret", hashed)
    assert not verify_secret("other", hashed)
    assert bcrypt.checkpw(b"s3cret", hashed.encode())


# ---------------------------------------------------------------------------
# Gate (HTTP)
# ---------------------------------------------------------------------------

PROTECTED = [
    ("GET", "/api/whoami"),
    ("GET", "/api/users"),
    ("GET", f"/api/users/{uuid.uuid4()}"),
    ("GET", "/api/organizations"),
    ("POST", "/api/organizations"),
    ("GET", f"/api/organizations/{uuid.uuid4()}/members"),
    ("GET", "/api/oauth2/clients"),
    ("POST", "/api/oauth2/clients"),
    ("GET", "/auth/session"),
]


class TestGate:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,path", PROTECTED)
    async def test_anonymous_is_unauthenticated(self, client: AsyncClient, method, path):
        response = await client.request(method, path, json={})
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHENTICATED"

    @pytest.mark.asyncio
    async def test_invalid_token_is_unauthenticated(self, client: AsyncClient):
        response = await client.get("/api/organizations", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unverified_user_gets_reason_code(self, client: AsyncClient, register):
        await register(make_identity("first@example.com"))
        headers = await register(make_identity("second@example.com", verified=False))

        response = await client.get("/api/organizations", headers=headers)
        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "EMAIL_NOT_VERIFIED"
        assert body["error"] == "Email verification required"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            OperationalError("SELECT count(*) FROM users", {}, Exception("connection reset")),
            PoolTimeoutError("QueuePool limit of size 10 overflow 15 reached"),
        ],
    )
    async def test_database_error_in_policy_is_unavailable(
        self, client: AsyncClient, register, monkeypatch, error
    ):
        # A sole user is verified only through the count, so a swallowed error would pass.
        headers = await register(make_identity("only@example.com", verified=False))

        async def failing_count(self):
            raise error

        monkeypatch.setattr(UserRepository, "count", failing_count)
        response = await client.get("/api/organizations", headers=headers)
        assert response.status_code == 503
        assert response.json()["code"] == "SERVICE_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_unverified_user_can_still_call_whoami(self, client: AsyncClient, register):
        await register(make_identity("first@example.com"))
        headers = await register(make_identity("second@example.com", verified=False))

        response = await client.get("/api/whoami", headers=headers)
        assert response.status_code == 200
        assert response.json()["verified"] is False

    @pytest.mark.asyncio
    async def test_cookie_session(self, client: AsyncClient, identity_client):
        identity_client.login(make_identity("a@example.com"), cookie="cookie-value")
        response = await client.get("/auth/session", cookies={COOKIE: "cookie-value"})
        assert response.status_code == 200
        assert response.json()["identity"]["traits"]["email"] == "a@example.com"

    @pytest.mark.asyncio
    async def test_logout_disables_session(self, client: AsyncClient, identity_client):
        session = identity_client.login(make_identity("a@example.com"), token="tok")
        response = await client.post("/auth/logout", headers={"Authorization": "Bearer tok"})
        assert response.status_code == 200
        assert identity_client.disabled == [session.id]
