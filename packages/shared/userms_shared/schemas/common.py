from enum import Enum
from typing import Any

from pydantic import BaseModel


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


# Roles allowed to mutate an organization and its membership.
MANAGER_ROLES = frozenset({Role.OWNER.value, Role.ADMIN.value})


class OrgType(str, Enum):
    DOMAIN = "domain"
    ORGANIZATION = "organization"
    TENANT = "tenant"


# Opaque JSON object stored on organizations; only its shape (a mapping with
# string keys) is validated.
OrgDocument = dict[str, Any]


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str
    code: str
    message: str
