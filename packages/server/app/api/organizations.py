"""
Organization API endpoints.

GET    /api/organizations                          List organizations (newest first)
POST   /api/organizations                          Create; the caller becomes owner
GET    /api/organizations/{org_id}                 Details with members
PUT    /api/organizations/{org_id}                 Update (owner/admin)
DELETE /api/organizations/{org_id}                 Delete (owner/admin, not the default org)
GET    /api/organizations/{org_id}/members         Members, oldest first
POST   /api/organizations/{org_id}/members         Add or re-role a member (owner/admin)
PUT    /api/organizations/{org_id}/members/{uid}   Change a member's role (owner/admin)
DELETE /api/organizations/{org_id}/members/{uid}   Remove a member (owner/admin)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_verified_user
from app.core.auth import CurrentUser
from app.core.database import get_session
from app.services import organizations as org_service
from userms_shared.schemas.organizations import (
    MemberAddRequest,
    MemberListResponse,
    MemberResponse,
    MemberRoleUpdateRequest,
    OrgCreateRequest,
    OrgDetailResponse,
    OrgListResponse,
    OrgResponse,
    OrgUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=OrgListResponse)
async def list_orgs(
    caller: CurrentUser = Depends(require_verified_user),
    session: AsyncSession = Depends(get_session),
):
    return OrgListResponse(data=await org_service.list_orgs(caller, session))


@router.post("", response_model=OrgResponse, status_code=201)
async def create_org(
    body: OrgCreateRequest,
    caller: CurrentUser = Depends(require_verified_user),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.create_org(body, caller, session)
    return org_service.org_response(org, "owner")


@router.get("/{org_id}", response_model=OrgDetailResponse)
async def get_org(
    org_id: uuid.UUID,
    caller: CurrentUser = Depends(require_verified_user),
    session: AsyncSession = Depends(get_session),
):
    return await org_service.get_org(org_id, session)


@router.put("/{org_id}", response_model=OrgResponse)
async def update_org(
    org_id: uuid.UUID,
    body: OrgUpdateRequest,
    caller: CurrentUser = Depends(require_verified_user),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.update_org(org_id, body, caller, session)
    return org_service.org_response(org)


@router.delete("/{org_id}", status_code=204)
async def delete_org(
    org_id: uuid.UUID,
    caller: CurrentUser = Depends(require_verified_user),
    session: AsyncSession = Depends(get_session),
):
    await org_service.delete_org(org_id, caller, session)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get("/{org_id}/members", response_model=MemberListResponse)
async def list_members(
    org_id: uuid.UUID,
    caller: CurrentUser = Depends(require_verified_user),
    session: AsyncSession = Depends(get_session),
):
    return MemberListResponse(data=await org_service.list_members(org_id, session))


@router.post("/{org_id}/members", response_model=MemberResponse, status_code=201)
async def add_member(
    org_id: uuid.UUID,
    body: MemberAddRequest,
    caller: CurrentUser = Depends(require_verified_user),
    session: AsyncSession = Depends(get_session),
):
    return await org_service.add_member(org_id, body, caller, session)


@router.put("/{org_id}/members/{user_id}", response_model=MemberResponse)
async def update_member_role(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    body: MemberRoleUpdateRequest,
    caller: CurrentUser = Depends(require_verified_user),
    session: AsyncSession = Depends(get_session),
):
    return await org_service.update_member_role(org_id, user_id, body.role, caller, session)


@router.delete("/{org_id}/members/{user_id}", status_code=204)
async def remove_member(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    caller: CurrentUser = Depends(require_verified_user),
    session: AsyncSession = Depends(get_session),
):
    await org_service.remove_member(org_id, user_id, caller, session)
    return Response(status_code=204)
