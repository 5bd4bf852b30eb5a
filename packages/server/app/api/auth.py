"""
Session endpoints.

GET  /auth/session    Resolved identity-provider session
POST /auth/logout     Revoke the session at the provider and clear the cookie
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response

from app.api.deps import get_identity_client, get_session_identity
from app.clients.identity import IdentityClient, ProviderError
from app.core.config import get_settings
from userms_shared.schemas.common import MessageResponse
from userms_shared.schemas.identity import Session

log = structlog.get_logger()

router = APIRouter()


@router.get("/session", response_model=Session)
async def current_session(auth_session: Session = Depends(get_session_identity)):
    return auth_session


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    auth_session: Session = Depends(get_session_identity),
    client: IdentityClient = Depends(get_identity_client),
):
    """Best effort: a provider failure still clears the local cookie."""
    try:
        await client.disable_session(auth_session.id)
    except ProviderError as exc:
        log.warning("auth.logout_revoke_failed", session_id=auth_session.id, error=str(exc))
    response.delete_cookie(get_settings().session_cookie_name, path="/")
    log.info("auth.logout", identity_id=auth_session.identity.id)
    return MessageResponse(message="Logged out")
