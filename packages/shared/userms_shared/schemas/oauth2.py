"""OAuth2 machine-to-machine client schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ClientCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    org_id: uuid.UUID
    # Space separated; defaults to the configured M2M scopes.
    scopes: Optional[str] = None


class TokenRequest(BaseModel):
    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    scope: Optional[str] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class ClientResponse(BaseModel):
    """Client metadata. Never carries the secret."""
    id: uuid.UUID
    client_id: str
    name: str
    description: str = ""
    org_id: uuid.UUID
    scopes: str
    is_active: bool
    created_at: datetime
    last_used_at: Optional[datetime] = None


class ClientCreatedResponse(ClientResponse):
    """Returned by create and regenerate. The secret is shown ONCE."""
    client_secret: str


class ClientListResponse(BaseModel):
    data: list[ClientResponse]
    count: int


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    scope: str = ""


class TokenValidationResponse(BaseModel):
    valid: bool
    client_id: Optional[str] = None
    scope: str = ""
    subject: Optional[str] = None
    expires_at: Optional[datetime] = None
    issued_at: Optional[datetime] = None
