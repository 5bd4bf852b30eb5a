"""User, whoami and verification schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional, List

from pydantic import BaseModel, Field

from .common import Role
from .identity import VerifiableAddress


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class UserProfile(BaseModel):
    """Local profile row mirrored from the identity provider."""
    id: uuid.UUID
    email: str
    first_name: str = ""
    last_name: str = ""
    time_zone: str = "UTC"
    ui_mode: str = "system"
    can_create_organizations: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class OrgMembership(BaseModel):
    """An organization the user belongs to, with the user's role in it."""
    id: uuid.UUID
    name: str
    description: str = ""
    org_type: str
    is_default: bool = False
    role: Role
    joined_at: Optional[datetime] = None


class WhoAmIResponse(BaseModel):
    identity_id: str
    email: str
    traits: dict[str, Any] = Field(default_factory=dict)
    verified: bool
    can_create_organizations: bool = False
    user: Optional[UserProfile] = None
    organizations: List[OrgMembership] = Field(default_factory=list)


class UserResponse(BaseModel):
    """A user as seen by other users: identity data merged with the local row."""
    id: str
    email: str
    traits: dict[str, Any] = Field(default_factory=dict)
    verified: bool
    state: Optional[str] = None
    profile: Optional[UserProfile] = None


class UserListResponse(BaseModel):
    data: List[UserResponse]


class VerificationStatusResponse(BaseModel):
    user_id: str
    verified: bool
    addresses: List[VerifiableAddress] = Field(default_factory=list)
