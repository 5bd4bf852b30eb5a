"""
Identity provider webhooks.

POST /hooks/after-registration
POST /hooks/after-login
POST /hooks/after-verification

Each upserts the local user from the posted identity and runs the first-user
bootstrap in the same transaction. Replays are safe.
"""

from __future__ import annotations

import secrets
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import Unauthenticated
from app.services.users import sync_profile
from userms_shared.schemas.identity import WebhookPayload

log = structlog.get_logger()


async def verify_webhook_key(x_webhook_key: Optional[str] = Header(default=None)) -> None:
    """Shared-secret check, enforced only when a key is configured."""
    expected = get_settings().webhook_api_key
    if expected is None:
        return
    if x_webhook_key is None or not secrets.compare_digest(x_webhook_key, expected):
        raise Unauthenticated("Invalid webhook key")


router = APIRouter(dependencies=[Depends(verify_webhook_key)])


@router.post("/after-registration")
async def after_registration(
    payload: WebhookPayload,
    session: AsyncSession = Depends(get_session),
):
    await sync_profile(payload.identity, session)
    log.info("hooks.after_registration", identity_id=payload.identity.id)
    return {"status": "success"}


@router.post("/after-login")
async def after_login(
    payload: WebhookPayload,
    session: AsyncSession = Depends(get_session),
):
    await sync_profile(payload.identity, session, login=True)
    log.info("hooks.after_login", identity_id=payload.identity.id)
    return {"status": "success"}


@router.post("/after-verification")
async def after_verification(
    payload: WebhookPayload,
    session: AsyncSession = Depends(get_session),
):
    await sync_profile(payload.identity, session)
    log.info("hooks.after_verification", identity_id=payload.identity.id)
    return {"status": "success"}
