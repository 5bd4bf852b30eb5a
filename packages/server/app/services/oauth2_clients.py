"""
OAuth2 machine-to-machine client management.

Every mutation writes to two stores: the OAuth2 provider (the credential
itself) and the local ``oauth2_clients`` table (ownership and audit). The
service commits the local transaction itself so that it can order the two
writes and compensate when the second one fails:

- create: remote create, local insert + commit; on local failure, or when the
  provider's answer to the create cannot be read, the remote client is
  deleted again.
- revoke: local deactivate + commit, then remote delete; a remote failure
  reactivates the local row. In between, the local row is inactive while the
  remote client still exists, and token issuance refuses inactive clients.
- regenerate: local hash update (flushed), remote secret replace, commit;
  a remote failure rolls the local change back.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import timedelta
from typing import Optional

import structlog
from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.identity import CredentialRejected, MalformedResponse, ProviderError
from app.clients.oauth2 import OAuth2ClientNotFound, OAuth2ProviderClient
from app.core.auth import CurrentUser, hash_secret
from app.core.config import get_settings
from app.core.errors import Conflict, Forbidden, InternalError, NotFound, Unauthenticated
from app.models.base import utcnow
from app.models.oauth2_client import OAuth2Client
from app.repositories import OAuth2ClientRepository, OrganizationRepository, TokenLogRepository
from userms_shared.schemas.oauth2 import (
    ClientCreateRequest,
    ClientCreatedResponse,
    ClientResponse,
    TokenRequest,
    TokenResponse,
    TokenValidationResponse,
)

log = structlog.get_logger()


def generate_client_id(user_id: uuid.UUID) -> str:
    """``m2m_<first 8 hex of the owner id>_<8 random hex>``."""
    return f"m2m_{user_id.hex[:8]}_{secrets.token_hex(4)}"


def generate_client_secret() -> str:
    return secrets.token_urlsafe(32)


def normalize_scopes(scopes: Optional[str]) -> str:
    """Collapse whitespace; fall back to the configured default scopes."""
    value = " ".join((scopes or "").split())
    return value or " ".join(get_settings().m2m_default_scopes.split())


def client_response(client: OAuth2Client) -> ClientResponse:
    return ClientResponse(
        id=client.id,
        client_id=client.client_id,
        name=client.name,
        description=client.description,
        org_id=client.org_id,
        scopes=client.scopes,
        is_active=client.is_active,
        created_at=client.created_at,
        last_used_at=client.last_used_at,
    )


async def _owned_client(client_id: str, caller: CurrentUser, session: AsyncSession) -> OAuth2Client:
    client = await OAuth2ClientRepository(session).get_by_client_id(client_id)
    if client is None or client.user_id != caller.id or not client.is_active:
        raise NotFound("OAuth2 client not found")
    return client


async def _remove_remote_client(client_id: str, provider: OAuth2ProviderClient) -> bool:
    """Compensating delete for a remote client that has no local record."""
    try:
        await provider.delete_client(client_id)
    except OAuth2ClientNotFound:
        pass
    except ProviderError as exc:
        log.error("oauth2.compensation_failed", client_id=client_id, error=str(exc))
        return False
    log.info("oauth2.compensated", client_id=client_id)
    return True


# ---------------------------------------------------------------------------
# Client lifecycle
# ---------------------------------------------------------------------------

async def create_client(
    req: ClientCreateRequest,
    caller: CurrentUser,
    provider: OAuth2ProviderClient,
    session: AsyncSession,
) -> ClientCreatedResponse:
    """Register a client with the provider and mirror it locally.

    The plaintext secret is returned here and never again.
    """
    orgs = OrganizationRepository(session)
    if await orgs.get(req.org_id) is None:
        raise NotFound("Organization not found")
    if await orgs.get_link(req.org_id, caller.id) is None:
        raise Forbidden("Not a member of this organization")

    client_id = generate_client_id(caller.id)
    client_secret = generate_client_secret()
    scopes = normalize_scopes(req.scopes)
    # Commit the caller's pending state before the remote write.
    await session.commit()

    try:
        await provider.create_client(
            client_id,
            client_secret,
            req.name,
            scopes,
            metadata={"user_id": str(caller.id), "org_id": str(req.org_id)},
        )
    except MalformedResponse:
        log.error("oauth2.remote_create_unconfirmed", client_id=client_id)
        await _remove_remote_client(client_id, provider)
        raise

    try:
        record = await OAuth2ClientRepository(session).insert(
            client_id=client_id,
            client_secret_hash=hash_secret(client_secret),
            user_id=caller.id,
            org_id=req.org_id,
            name=req.name,
            description=req.description,
            scopes=scopes,
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        log.error("oauth2.local_insert_failed", client_id=client_id, error=str(exc))
        if not await _remove_remote_client(client_id, provider):
            raise InternalError(
                "Client registration failed locally and the remote client could not be removed"
            ) from exc
        raise InternalError("Client registration failed; the remote client was removed") from exc

    log.info("oauth2.client_created", client_id=client_id, org_id=str(req.org_id), user_id=str(caller.id))
    return ClientCreatedResponse(**client_response(record).model_dump(), client_secret=client_secret)


async def list_clients(caller: CurrentUser, session: AsyncSession) -> list[ClientResponse]:
    clients = await OAuth2ClientRepository(session).list_for_user(caller.id)
    return [client_response(client) for client in clients]


async def get_client(client_id: str, caller: CurrentUser, session: AsyncSession) -> ClientResponse:
    return client_response(await _owned_client(client_id, caller, session))


async def revoke_client(
    client_id: str,
    caller: CurrentUser,
    provider: OAuth2ProviderClient,
    session: AsyncSession,
) -> None:
    client = await _owned_client(client_id, caller, session)
    clients = OAuth2ClientRepository(session)
    await clients.set_active(client, False)
    await session.commit()

    try:
        await provider.delete_client(client_id)
    except OAuth2ClientNotFound:
        log.info("oauth2.remote_already_deleted", client_id=client_id)
    except ProviderError as exc:
        log.warning("oauth2.revoke_reverted", client_id=client_id, error=str(exc))
        await clients.set_active(client, True)
        await session.commit()
        raise

    log.info("oauth2.client_revoked", client_id=client_id, user_id=str(caller.id))


async def regenerate_secret(
    client_id: str,
    caller: CurrentUser,
    provider: OAuth2ProviderClient,
    session: AsyncSession,
) -> ClientCreatedResponse:
    client = await _owned_client(client_id, caller, session)
    client_secret = generate_client_secret()
    await OAuth2ClientRepository(session).update_secret_hash(client, hash_secret(client_secret))

    try:
        await provider.set_client_secret(client_id, client_secret)
    except OAuth2ClientNotFound:
        await session.rollback()
        raise Conflict("Client no longer exists at the OAuth2 provider")
    except ProviderError:
        await session.rollback()
        raise

    await session.commit()
    log.info("oauth2.secret_regenerated", client_id=client_id, user_id=str(caller.id))
    return ClientCreatedResponse(**client_response(client).model_dump(), client_secret=client_secret)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

async def issue_token(
    req: TokenRequest,
    request: Request,
    provider: OAuth2ProviderClient,
    session: AsyncSession,
) -> TokenResponse:
    """Client-credentials exchange for an active local client."""
    clients = OAuth2ClientRepository(session)
    client = await clients.get_by_client_id(req.client_id)
    if client is None or not client.is_active:
        raise Unauthenticated("Invalid client credentials")

    try:
        grant = await provider.exchange_client_credentials(
            req.client_id, req.client_secret, normalize_scopes(req.scope or client.scopes)
        )
    except CredentialRejected:
        log.info("oauth2.token_rejected", client_id=req.client_id)
        raise Unauthenticated("Invalid client credentials")

    await TokenLogRepository(session).record(
        client_id=req.client_id,
        granted_scopes=grant.scope,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
        expires_at=utcnow() + timedelta(seconds=grant.expires_in) if grant.expires_in else None,
    )
    await clients.touch_last_used(req.client_id)
    log.info("oauth2.token_issued", client_id=req.client_id, scope=grant.scope)
    return TokenResponse(
        access_token=grant.access_token,
        token_type=grant.token_type,
        expires_in=grant.expires_in,
        scope=grant.scope,
    )


async def validate_token(token: Optional[str], provider: OAuth2ProviderClient) -> TokenValidationResponse:
    if not token:
        raise Unauthenticated("Bearer token required")
    result = await provider.introspect(token)
    if not result.active:
        raise Unauthenticated("Token is not active")
    return TokenValidationResponse(
        valid=True,
        client_id=result.client_id,
        scope=result.scope,
        subject=result.sub,
        expires_at=result.expires_at,
        issued_at=result.issued_at,
    )
