"""
Organization service: org CRUD and membership management.

Mutations require the caller to hold an ``owner`` or ``admin`` link to the
organization; the check happens before any write.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import CurrentUser, require_org_role
from app.core.errors import Conflict, Forbidden, NotFound
from app.models.organization import Organization
from app.models.user import User
from app.models.user_org import MembershipLink
from app.repositories import OAuth2ClientRepository, OrganizationRepository, UserRepository
from userms_shared.schemas.common import MANAGER_ROLES, Role
from userms_shared.schemas.organizations import (
    MemberAddRequest,
    MemberResponse,
    OrgCreateRequest,
    OrgDetailResponse,
    OrgResponse,
    OrgUpdateRequest,
)

log = structlog.get_logger()

REQUIRED_ORG_FIELDS = ("name", "description", "org_type", "data")


def org_response(org: Organization, role: str | None = None) -> OrgResponse:
    return OrgResponse(
        id=org.id,
        name=org.name,
        description=org.description,
        org_type=org.org_type,
        domain_id=org.domain_id,
        parent_id=org.parent_id,
        owner_id=org.owner_id,
        is_default=org.is_default,
        data=org.data or {},
        created_at=org.created_at,
        updated_at=org.updated_at,
        role=role,
    )


def member_response(link: MembershipLink, user: User) -> MemberResponse:
    return MemberResponse(
        user_id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=link.role,
        joined_at=link.joined_at,
    )


async def _get_org(org_id: uuid.UUID, orgs: OrganizationRepository) -> Organization:
    org = await orgs.get(org_id)
    if org is None:
        raise NotFound("Organization not found")
    return org


async def _ensure_name_free(name: str, orgs: OrganizationRepository, exclude: uuid.UUID | None = None) -> None:
    existing = await orgs.get_by_name(name)
    if existing is not None and existing.id != exclude:
        raise Conflict("Organization name already taken")


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

async def create_org(req: OrgCreateRequest, caller: CurrentUser, session: AsyncSession) -> Organization:
    """Create an org; the creator becomes its owner."""
    users = UserRepository(session)
    if not caller.user.can_create_organizations and not await users.has_admin_role(caller.id):
        raise Forbidden("Organization creation not permitted")

    orgs = OrganizationRepository(session)
    await _ensure_name_free(req.name, orgs)

    org = await orgs.create(
        name=req.name,
        description=req.description,
        org_type=req.org_type.value,
        domain_id=req.domain_id,
        parent_id=req.parent_id,
        owner_id=caller.id,
        data=req.data,
    )
    await orgs.add_member(org.id, caller.id, Role.OWNER.value)
    log.info("org.created", org_id=str(org.id), name=org.name, creator=str(caller.id))
    return org


async def list_orgs(caller: CurrentUser, session: AsyncSession) -> list[OrgResponse]:
    """All organizations, newest first, with the caller's role where it has one."""
    orgs = await OrganizationRepository(session).list_all()
    roles = {
        org.id: link.role
        for org, link in await UserRepository(session).organizations_for_user(caller.id)
    }
    return [org_response(org, roles.get(org.id)) for org in orgs]


async def get_org(org_id: uuid.UUID, session: AsyncSession) -> OrgDetailResponse:
    orgs = OrganizationRepository(session)
    org = await _get_org(org_id, orgs)
    members = [member_response(link, user) for link, user in await orgs.members(org_id)]
    return OrgDetailResponse(
        **org_response(org).model_dump(),
        members=members,
        member_count=len(members),
    )


async def update_org(
    org_id: uuid.UUID,
    req: OrgUpdateRequest,
    caller: CurrentUser,
    session: AsyncSession,
) -> Organization:
    await require_org_role(org_id, caller.id, MANAGER_ROLES, session)
    orgs = OrganizationRepository(session)
    org = await _get_org(org_id, orgs)

    changes = req.model_dump(exclude_unset=True)
    # Explicit nulls clear the nullable columns and are ignored for the rest.
    for key in REQUIRED_ORG_FIELDS:
        if key in changes and changes[key] is None:
            del changes[key]
    if "org_type" in changes:
        changes["org_type"] = req.org_type.value
    if "name" in changes:
        await _ensure_name_free(changes["name"], orgs, exclude=org.id)

    org = await orgs.update(org, **changes)
    log.info("org.updated", org_id=str(org_id), fields=sorted(changes))
    return org


async def delete_org(org_id: uuid.UUID, caller: CurrentUser, session: AsyncSession) -> None:
    await require_org_role(org_id, caller.id, MANAGER_ROLES, session)
    orgs = OrganizationRepository(session)
    org = await _get_org(org_id, orgs)
    if org.is_default:
        raise Conflict("The default organization cannot be deleted")
    # Deleting the org cascades its client rows; remote clients would outlive them.
    if await OAuth2ClientRepository(session).count_active_for_org(org_id):
        raise Conflict("Revoke the organization's OAuth2 clients before deleting it")
    await orgs.delete(org)
    log.info("org.deleted", org_id=str(org_id), by=str(caller.id))


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------

async def list_members(org_id: uuid.UUID, session: AsyncSession) -> list[MemberResponse]:
    orgs = OrganizationRepository(session)
    await _get_org(org_id, orgs)
    return [member_response(link, user) for link, user in await orgs.members(org_id)]


async def add_member(
    org_id: uuid.UUID,
    req: MemberAddRequest,
    caller: CurrentUser,
    session: AsyncSession,
) -> MemberResponse:
    """Add (or re-role) a member identified by user id or email."""
    await require_org_role(org_id, caller.id, MANAGER_ROLES, session)

    users = UserRepository(session)
    user = await users.get(req.user_id) if req.user_id else await users.get_by_email(str(req.email))
    if user is None:
        raise NotFound("User not found")

    orgs = OrganizationRepository(session)
    existing = await orgs.get_link(org_id, user.id)
    if existing is not None and existing.role == Role.OWNER.value and req.role != Role.OWNER:
        await _ensure_other_owner(org_id, orgs)

    link = await orgs.add_member(org_id, user.id, req.role.value)
    log.info("org.member_added", org_id=str(org_id), user_id=str(user.id), role=link.role)
    return member_response(link, user)


async def _ensure_other_owner(org_id: uuid.UUID, orgs: OrganizationRepository) -> None:
    if await orgs.count_members(org_id, role=Role.OWNER.value) <= 1:
        raise Conflict("An organization must keep at least one owner")


async def remove_member(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    caller: CurrentUser,
    session: AsyncSession,
) -> None:
    await require_org_role(org_id, caller.id, MANAGER_ROLES, session)
    orgs = OrganizationRepository(session)
    link = await orgs.get_link(org_id, user_id)
    if link is None:
        raise NotFound("Member not found")
    if link.role == Role.OWNER.value:
        await _ensure_other_owner(org_id, orgs)
    await orgs.remove_member(org_id, user_id)
    log.info("org.member_removed", org_id=str(org_id), user_id=str(user_id), by=str(caller.id))


async def update_member_role(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    role: Role,
    caller: CurrentUser,
    session: AsyncSession,
) -> MemberResponse:
    await require_org_role(org_id, caller.id, MANAGER_ROLES, session)
    orgs = OrganizationRepository(session)
    link = await orgs.get_link(org_id, user_id)
    if link is None:
        raise NotFound("Member not found")
    if link.role == Role.OWNER.value and role != Role.OWNER:
        await _ensure_other_owner(org_id, orgs)

    link = await orgs.update_member_role(org_id, user_id, role.value)
    user = await UserRepository(session).get(user_id)
    log.info("org.member_role_changed", org_id=str(org_id), user_id=str(user_id), role=role.value)
    return member_response(link, user)
