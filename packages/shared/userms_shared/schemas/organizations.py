"""
Organization and membership schemas.

Covers: org CRUD request/response and member add / role change.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

from .common import OrgDocument, OrgType, Role


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    org_type: OrgType = OrgType.ORGANIZATION
    domain_id: Optional[uuid.UUID] = None
    parent_id: Optional[uuid.UUID] = None
    data: OrgDocument = Field(default_factory=dict)


class OrgUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    org_type: Optional[OrgType] = None
    domain_id: Optional[uuid.UUID] = None
    parent_id: Optional[uuid.UUID] = None
    data: Optional[OrgDocument] = None


class MemberAddRequest(BaseModel):
    """Add a member by local user id or by email."""
    user_id: Optional[uuid.UUID] = None
    email: Optional[EmailStr] = None
    role: Role = Role.MEMBER

    @model_validator(mode="after")
    def _needs_user(self) -> "MemberAddRequest":
        if self.user_id is None and self.email is None:
            raise ValueError("either user_id or email is required")
        return self


class MemberRoleUpdateRequest(BaseModel):
    role: Role


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MemberResponse(BaseModel):
    user_id: uuid.UUID
    email: str
    first_name: str = ""
    last_name: str = ""
    role: Role
    joined_at: Optional[datetime] = None


class MemberListResponse(BaseModel):
    data: list[MemberResponse]


class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: str = ""
    org_type: str
    domain_id: Optional[uuid.UUID] = None
    parent_id: Optional[uuid.UUID] = None
    owner_id: Optional[uuid.UUID] = None
    is_default: bool = False
    data: OrgDocument = Field(default_factory=dict)
    created_at: datetime
    updated_at: Optional[datetime] = None
    # Caller's role; only set on list responses.
    role: Optional[Role] = None


class OrgDetailResponse(OrgResponse):
    members: list[MemberResponse] = Field(default_factory=list)
    member_count: int = 0


class OrgListResponse(BaseModel):
    data: list[OrgResponse]
