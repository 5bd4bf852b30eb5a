"""
HTTP routers.

/api/...    user, organization and OAuth2 client endpoints
/auth/...   session endpoints
/hooks/...  identity provider webhooks
"""

from fastapi import APIRouter

from . import auth, hooks, oauth2, organizations, users

router = APIRouter()

router.include_router(users.router, prefix="/api", tags=["Users"])
router.include_router(organizations.router, prefix="/api/organizations", tags=["Organizations"])
router.include_router(oauth2.router, prefix="/api/oauth2", tags=["OAuth2 Clients"])
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(hooks.router, prefix="/hooks", tags=["Webhooks"])
