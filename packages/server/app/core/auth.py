"""
Authentication and authorization for userms.

Supports:
- Session resolution against the identity provider: bearer session token
  first, then the session cookie
- Email verification policy (bootstrap user, Google OIDC, verified email)
- Organization role checks
- bcrypt hashing for OAuth2 client secrets
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

import bcrypt
import structlog
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.identity import IdentityClient, ProviderError
from app.core.errors import Forbidden, NotFound
from app.models.user import User
from app.models.user_org import MembershipLink
from app.repositories import OrganizationRepository, UserRepository
from userms_shared.schemas.identity import Identity, Session

log = structlog.get_logger()

GOOGLE_OIDC_PREFIX = "google:"


# ---------------------------------------------------------------------------
# Secret hashing
# ---------------------------------------------------------------------------

def hash_secret(secret: str) -> str:
    """Hash a client secret using bcrypt with cost factor 12."""
    return bcrypt.hashpw(secret.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_secret(secret: str, hashed: str) -> bool:
    return bcrypt.checkpw(secret.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# Session resolution
# ---------------------------------------------------------------------------

def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class SessionResolver:
    """Turns the credentials on a request into an identity-provider session.

    Tried in order: ``Authorization: Bearer <session-token>``, then the
    session cookie. The first credential the provider confirms wins. Provider
    failures are logged and treated as "no session" so anonymous endpoints
    stay reachable.
    """

    def __init__(self, client: IdentityClient, cookie_name: str):
        self._client = client
        self._cookie_name = cookie_name

    async def resolve(self, request: Request) -> Optional[Session]:
        token = bearer_token(request)
        if token:
            session = await self._try(session_token=token)
            if session is not None:
                return session

        cookie = request.cookies.get(self._cookie_name)
        if cookie:
            return await self._try(cookie=f"{self._cookie_name}={cookie}")
        return None

    async def _try(
        self, session_token: Optional[str] = None, cookie: Optional[str] = None
    ) -> Optional[Session]:
        carrier = "bearer" if session_token else "cookie"
        try:
            return await self._client.to_session(session_token=session_token, cookie=cookie)
        except ProviderError as exc:
            log.info(
                "auth.session_rejected",
                carrier=carrier,
                reason=type(exc).__name__,
                status=exc.status_code,
            )
            return None


def identity_uuid(identity: Identity) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(identity.id)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Verification policy
# ---------------------------------------------------------------------------

def is_verified(identity: Identity, user_count: int) -> bool:
    """Rules, first match wins:

    1. at most one user exists: the bootstrap user is verified;
    2. an OIDC identifier starting with ``google:``;
    3. any verifiable address with ``via == "email"`` marked verified.
    """
    if user_count <= 1:
        return True
    if any(ident.startswith(GOOGLE_OIDC_PREFIX) for ident in identity.oidc_identifiers()):
        return True
    return any(
        address.via == "email" and address.verified
        for address in identity.verifiable_addresses
    )


class VerificationPolicy:
    """Evaluates ``is_verified`` with the live user count.

    Database errors from the count propagate; they never mark a user verified.
    """

    async def evaluate(self, identity: Identity, session: AsyncSession) -> bool:
        count = await UserRepository(session).count()
        return is_verified(identity, count)


@dataclass
class CurrentUser:
    """A verified caller: provider session plus local user row."""

    session: Session
    user: User
    verified: bool = True

    @property
    def identity(self) -> Identity:
        return self.session.identity

    @property
    def id(self) -> uuid.UUID:
        return self.user.id


# ---------------------------------------------------------------------------
# Role checks
# ---------------------------------------------------------------------------

async def require_org_role(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    roles: Iterable[str],
    session: AsyncSession,
) -> MembershipLink:
    """Return the caller's membership if its role is in ``roles``.

    404 when the organization does not exist, 403 otherwise.
    """
    orgs = OrganizationRepository(session)
    if await orgs.get(org_id) is None:
        raise NotFound("Organization not found")
    link = await orgs.get_link(org_id, user_id)
    allowed = set(roles)
    if link is None or link.role not in allowed:
        log.info(
            "auth.role_denied",
            org_id=str(org_id),
            user_id=str(user_id),
            role=link.role if link else None,
        )
        raise Forbidden(f"Requires one of: {', '.join(sorted(allowed))}")
    return link
