"""OAuth2 machine-to-machine client records and token audit log."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class OAuth2Client(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "oauth2_clients"

    client_id: str = Field(unique=True, index=True, nullable=False, max_length=255)
    client_secret_hash: str = Field(nullable=False)  # bcrypt; plaintext is never stored
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True, nullable=False, ondelete="CASCADE")
    org_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="organizations.id", index=True, ondelete="CASCADE"
    )
    name: str = Field(nullable=False, max_length=255)
    description: str = Field(default="", nullable=False)
    scopes: str = Field(default="data_pipeline", nullable=False)
    is_active: bool = Field(default=True, nullable=False, index=True)
    last_used_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))


class OAuth2TokenLog(UUIDMixin, SQLModel, table=True):
    __tablename__ = "oauth2_token_logs"

    client_id: str = Field(nullable=False, index=True, max_length=255)
    granted_scopes: Optional[str] = None
    ip_address: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = None
    expires_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        index=True,
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")},
        sa_type=sa.DateTime(timezone=True),
    )
