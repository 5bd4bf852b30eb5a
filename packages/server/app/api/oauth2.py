"""
OAuth2 machine-to-machine client endpoints.

POST   /api/oauth2/clients                          Create (secret returned once)
GET    /api/oauth2/clients                          Caller's active clients
GET    /api/oauth2/clients/{client_id}              One client, never with its secret
DELETE /api/oauth2/clients/{client_id}              Revoke
POST   /api/oauth2/clients/{client_id}/regenerate   New secret (returned once)
POST   /api/oauth2/token                            Client-credentials exchange
POST   /api/oauth2/validate                         Introspect a bearer access token
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_oauth2_client, require_verified_user
from app.clients.oauth2 import OAuth2ProviderClient
from app.core.auth import CurrentUser, bearer_token
from app.core.database import get_session
from app.services import oauth2_clients as client_service
from userms_shared.schemas.oauth2 import (
    ClientCreateRequest,
    ClientCreatedResponse,
    ClientListResponse,
    ClientResponse,
    TokenRequest,
    TokenResponse,
    TokenValidationResponse,
)

router = APIRouter()


@router.post("/clients", response_model=ClientCreatedResponse, status_code=201)
async def create_client(
    body: ClientCreateRequest,
    caller: CurrentUser = Depends(require_verified_user),
    provider: OAuth2ProviderClient = Depends(get_oauth2_client),
    session: AsyncSession = Depends(get_session),
):
    return await client_service.create_client(body, caller, provider, session)


@router.get("/clients", response_model=ClientListResponse)
async def list_clients(
    caller: CurrentUser = Depends(require_verified_user),
    session: AsyncSession = Depends(get_session),
):
    clients = await client_service.list_clients(caller, session)
    return ClientListResponse(data=clients, count=len(clients))


@router.get("/clients/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: str,
    caller: CurrentUser = Depends(require_verified_user),
    session: AsyncSession = Depends(get_session),
):
    return await client_service.get_client(client_id, caller, session)


@router.delete("/clients/{client_id}", status_code=204)
async def revoke_client(
    client_id: str,
    caller: CurrentUser = Depends(require_verified_user),
    provider: OAuth2ProviderClient = Depends(get_oauth2_client),
    session: AsyncSession = Depends(get_session),
):
    await client_service.revoke_client(client_id, caller, provider, session)
    return Response(status_code=204)


@router.post("/clients/{client_id}/regenerate", response_model=ClientCreatedResponse)
async def regenerate_secret(
    client_id: str,
    caller: CurrentUser = Depends(require_verified_user),
    provider: OAuth2ProviderClient = Depends(get_oauth2_client),
    session: AsyncSession = Depends(get_session),
):
    return await client_service.regenerate_secret(client_id, caller, provider, session)


@router.post("/token", response_model=TokenResponse)
async def issue_token(
    body: TokenRequest,
    request: Request,
    provider: OAuth2ProviderClient = Depends(get_oauth2_client),
    session: AsyncSession = Depends(get_session),
):
    """Machine clients authenticate with their own credentials, not a session."""
    return await client_service.issue_token(body, request, provider, session)


@router.post("/validate", response_model=TokenValidationResponse)
async def validate_token(
    request: Request,
    provider: OAuth2ProviderClient = Depends(get_oauth2_client),
):
    return await client_service.validate_token(bearer_token(request), provider)
