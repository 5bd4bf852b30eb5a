"""User model.

The primary key is the identity id issued by the identity provider.
"""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin


class User(TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(primary_key=True, nullable=False)
    email: str = Field(unique=True, index=True, nullable=False, max_length=1024)
    first_name: str = Field(default="", nullable=False, max_length=1024)
    last_name: str = Field(default="", nullable=False, max_length=1024)
    time_zone: str = Field(default="UTC", nullable=False, max_length=255)
    ui_mode: str = Field(default="system", nullable=False, max_length=255)  # system | light | dark
    can_create_organizations: bool = Field(default=False, nullable=False, index=True)
    last_login: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
