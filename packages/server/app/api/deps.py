"""
Request dependencies shared by the routers.

Provider adapters live on ``app.state`` (built in ``create_app``) and are
served through these functions so tests can override them.
"""

from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.identity import IdentityClient
from app.clients.oauth2 import OAuth2ProviderClient
from app.core.auth import CurrentUser, SessionResolver, VerificationPolicy
from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import EmailNotVerified, Unauthenticated
from app.services.users import ensure_local_user
from userms_shared.schemas.identity import Session


def get_identity_client(request: Request) -> IdentityClient:
    return request.app.state.identity_client


def get_oauth2_client(request: Request) -> OAuth2ProviderClient:
    return request.app.state.oauth2_client


def get_session_resolver(
    client: IdentityClient = Depends(get_identity_client),
) -> SessionResolver:
    return SessionResolver(client, get_settings().session_cookie_name)


async def get_session_identity(
    request: Request,
    resolver: SessionResolver = Depends(get_session_resolver),
) -> Session:
    """Authenticated caller's provider session, or 401."""
    auth_session = await resolver.resolve(request)
    if auth_session is None:
        raise Unauthenticated("Authentication required")
    request.state.identity_id = auth_session.identity.id
    return auth_session


async def require_verified_user(
    auth_session: Session = Depends(get_session_identity),
    session: AsyncSession = Depends(get_session),
) -> CurrentUser:
    """Authenticated and verified caller, with its local user row."""
    if not await VerificationPolicy().evaluate(auth_session.identity, session):
        raise EmailNotVerified()
    user = await ensure_local_user(auth_session, session)
    return CurrentUser(session=auth_session, user=user, verified=True)
