"""
Shared fixtures: in-memory SQLite database and fake provider adapters.
"""

from __future__ import annotations

import uuid
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.deps import get_identity_client, get_oauth2_client
from app.clients.identity import CredentialRejected, IdentityNotFound, ProviderError
from app.clients.oauth2 import Introspection, OAuth2ClientNotFound, RemoteClient, TokenGrant
from app.core.database import get_session, init_db
from app.main import create_app
from userms_shared.schemas.identity import Identity, Session


# ---------------------------------------------------------------------------
# Identity helpers
# ---------------------------------------------------------------------------

def make_identity(
    email: str,
    *,
    verified: bool = True,
    oidc: Optional[list[str]] = None,
    first: str = "",
    last: str = "",
    identity_id: Optional[uuid.UUID] = None,
) -> Identity:
    body = {
        "id": str(identity_id or uuid.uuid4()),
        "schema_id": "default",
        "state": "active",
        "traits": {"email": email, "name": {"first": first, "last": last}},
        "verifiable_addresses": [
            {"value": email, "verified": verified, "via": "email", "status": "completed" if verified else "pending"}
        ],
    }
    if oidc is not None:
        body["credentials"] = {"oidc": {"type": "oidc", "identifiers": oidc}}
    return Identity.model_validate(body)


# ---------------------------------------------------------------------------
# Fake adapters
# ---------------------------------------------------------------------------

class FakeIdentityClient:
    """In-memory identity provider keyed by session token and cookie value."""

    def __init__(self):
        self.identities: dict[str, Identity] = {}
        self.tokens: dict[str, Session] = {}
        self.cookies: dict[str, Session] = {}
        self.disabled: list[str] = []
        self.error: Optional[ProviderError] = None

    def login(self, identity: Identity, token: Optional[str] = None, cookie: Optional[str] = None) -> Session:
        self.identities[identity.id] = identity
        session = Session(id=str(uuid.uuid4()), active=True, identity=identity)
        if token:
            self.tokens[token] = session
        if cookie:
            self.cookies[cookie] = session
        return session

    async def to_session(self, session_token=None, cookie=None) -> Session:
        if self.error is not None:
            raise self.error
        if session_token and session_token in self.tokens:
            return self.tokens[session_token]
        if cookie:
            _, _, value = cookie.partition("=")
            if value in self.cookies:
                return self.cookies[value]
        raise CredentialRejected("session rejected", 401)

    async def get_identity(self, identity_id: str) -> Identity:
        if identity_id not in self.identities:
            raise IdentityNotFound(f"identity {identity_id} not found", 404)
        return self.identities[identity_id]

    async def list_identities(self) -> list[Identity]:
        return list(self.identities.values())

    async def disable_session(self, session_id: str) -> None:
        self.disabled.append(session_id)


class FakeOAuth2Client:
    """In-memory OAuth2 provider. Set ``fail_*`` to inject provider errors."""

    def __init__(self):
        self.clients: dict[str, dict] = {}
        self.tokens: dict[str, str] = {}
        self.deleted: list[str] = []
        self.fail_delete: Optional[ProviderError] = None
        self.fail_secret: Optional[ProviderError] = None
        # Raised after the client is stored, like an unreadable 2xx answer.
        self.fail_after_create: Optional[ProviderError] = None

    async def create_client(self, client_id, client_secret, name, scope, metadata=None) -> RemoteClient:
        self.clients[client_id] = {"secret": client_secret, "name": name, "scope": scope, "metadata": metadata or {}}
        if self.fail_after_create is not None:
            raise self.fail_after_create
        return RemoteClient(client_id=client_id, client_name=name, scope=scope, grant_types=["client_credentials"])

    async def get_client(self, client_id) -> RemoteClient:
        if client_id not in self.clients:
            raise OAuth2ClientNotFound(f"client {client_id} not found", 404)
        data = self.clients[client_id]
        return RemoteClient(client_id=client_id, client_name=data["name"], scope=data["scope"])

    async def set_client_secret(self, client_id, client_secret) -> RemoteClient:
        if self.fail_secret is not None:
            raise self.fail_secret
        if client_id not in self.clients:
            raise OAuth2ClientNotFound(f"client {client_id} not found", 404)
        self.clients[client_id]["secret"] = client_secret
        return await self.get_client(client_id)

    async def delete_client(self, client_id) -> None:
        if self.fail_delete is not None:
            raise self.fail_delete
        if client_id not in self.clients:
            raise OAuth2ClientNotFound(f"client {client_id} not found", 404)
        del self.clients[client_id]
        self.deleted.append(client_id)

    async def introspect(self, token) -> Introspection:
        if token not in self.tokens:
            return Introspection(active=False)
        client_id = self.tokens[token]
        return Introspection(
            active=True,
            client_id=client_id,
            scope=self.clients[client_id]["scope"],
            sub=client_id,
            exp=4_102_444_800,
            iat=1_700_000_000,
        )

    async def exchange_client_credentials(self, client_id, client_secret, scope=None) -> TokenGrant:
        data = self.clients.get(client_id)
        if data is None or data["secret"] != client_secret:
            raise CredentialRejected("client credentials rejected", 401)
        token = f"at_{uuid.uuid4().hex}"
        self.tokens[token] = client_id
        return TokenGrant(access_token=token, expires_in=3600, scope=scope or data["scope"])


# ---------------------------------------------------------------------------
# Database + app fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def identity_client():
    return FakeIdentityClient()


@pytest.fixture
def oauth2_client():
    return FakeOAuth2Client()


@pytest.fixture
def app(session_factory, identity_client, oauth2_client):
    application = create_app()

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_session] = override_session
    application.dependency_overrides[get_identity_client] = lambda: identity_client
    application.dependency_overrides[get_oauth2_client] = lambda: oauth2_client
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def register(client, identity_client):
    """Register an identity through the after-registration webhook and log it in.

    Returns the Authorization headers for the new user.
    """

    async def _register(identity: Identity, token: Optional[str] = None) -> dict[str, str]:
        token = token or f"st_{uuid.uuid4().hex}"
        identity_client.login(identity, token=token)
        response = await client.post(
            "/hooks/after-registration",
            json={"identity": identity.model_dump(mode="json")},
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {token}"}

    return _register
