"""
User API endpoints.

GET /api/whoami                       Caller's identity, profile and organizations
GET /api/users                        All users (verified callers)
GET /api/users/{user_id}              One user
GET /api/users/{user_id}/verification  Verification status of a user
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_identity_client, get_session_identity, require_verified_user
from app.clients.identity import IdentityClient
from app.core.auth import CurrentUser
from app.core.database import get_session
from app.services import users as user_service
from userms_shared.schemas.identity import Session
from userms_shared.schemas.users import (
    UserListResponse,
    UserResponse,
    VerificationStatusResponse,
    WhoAmIResponse,
)

router = APIRouter()


@router.get("/whoami", response_model=WhoAmIResponse)
async def whoami(
    auth_session: Session = Depends(get_session_identity),
    session: AsyncSession = Depends(get_session),
):
    """Requires authentication only, so unverified users can see their state."""
    return await user_service.whoami(auth_session, session)


@router.get("/users", response_model=UserListResponse)
async def list_users(
    caller: CurrentUser = Depends(require_verified_user),
    client: IdentityClient = Depends(get_identity_client),
    session: AsyncSession = Depends(get_session),
):
    return await user_service.list_users(client, session)


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: uuid.UUID,
    caller: CurrentUser = Depends(require_verified_user),
    client: IdentityClient = Depends(get_identity_client),
    session: AsyncSession = Depends(get_session),
):
    return await user_service.get_user(user_id, client, session)


@router.get("/users/{user_id}/verification", response_model=VerificationStatusResponse)
async def verification_status(
    user_id: uuid.UUID,
    caller: CurrentUser = Depends(require_verified_user),
    client: IdentityClient = Depends(get_identity_client),
    session: AsyncSession = Depends(get_session),
):
    return await user_service.verification_status(user_id, client, session)
