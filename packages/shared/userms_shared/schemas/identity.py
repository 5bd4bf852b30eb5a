"""Identity provider payloads (sessions, identities, webhook bodies).

Only the fields this service reads are modelled; everything else the
provider sends is kept via ``extra="allow"``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class VerifiableAddress(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    value: str
    verified: bool = False
    via: str = "email"
    status: Optional[str] = None


class RecoveryAddress(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    value: str
    via: str = "email"


class Credential(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    identifiers: list[str] = Field(default_factory=list)


class Identity(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    schema_id: Optional[str] = None
    state: Optional[str] = None
    traits: dict[str, Any] = Field(default_factory=dict)
    verifiable_addresses: list[VerifiableAddress] = Field(default_factory=list)
    recovery_addresses: list[RecoveryAddress] = Field(default_factory=list)
    credentials: Optional[dict[str, Credential]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def email(self) -> str:
        email = self.traits.get("email")
        return email if isinstance(email, str) else ""

    @property
    def names(self) -> tuple[str, str]:
        """(first, last) from the ``name`` trait, empty strings when absent."""
        name = self.traits.get("name")
        if not isinstance(name, dict):
            return "", ""
        first = name.get("first")
        last = name.get("last")
        return (
            first if isinstance(first, str) else "",
            last if isinstance(last, str) else "",
        )

    def oidc_identifiers(self) -> list[str]:
        if not self.credentials:
            return []
        oidc = self.credentials.get("oidc")
        if oidc is None or oidc.type != "oidc":
            return []
        return list(oidc.identifiers)


class Session(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    active: bool = True
    expires_at: Optional[datetime] = None
    authenticated_at: Optional[datetime] = None
    identity: Identity


class WebhookPayload(BaseModel):
    """Body sent by the identity provider's web_hook action."""

    model_config = ConfigDict(extra="allow")

    identity: Identity
    flow: Optional[Any] = None
