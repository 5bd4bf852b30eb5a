"""
OAuth2 provider adapter (Ory Hydra).

Admin API: client create/get/replace/delete and token introspection.
Public API: the client-credentials grant at ``/oauth2/token``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.clients.identity import (
    CredentialRejected,
    MalformedResponse,
    ProviderError,
    ProviderUnavailable,
)

log = structlog.get_logger()


class OAuth2ClientNotFound(ProviderError):
    pass


class RemoteClient(BaseModel):
    model_config = ConfigDict(extra="allow")

    client_id: str
    client_name: str = ""
    scope: str = ""
    grant_types: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TokenGrant(BaseModel):
    model_config = ConfigDict(extra="allow")

    access_token: str
    token_type: str = "bearer"
    expires_in: int = 0
    scope: str = ""


class Introspection(BaseModel):
    model_config = ConfigDict(extra="allow")

    active: bool
    client_id: Optional[str] = None
    scope: str = ""
    sub: Optional[str] = None
    exp: Optional[int] = None
    iat: Optional[int] = None

    @property
    def expires_at(self) -> Optional[datetime]:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc) if self.exp else None

    @property
    def issued_at(self) -> Optional[datetime]:
        return datetime.fromtimestamp(self.iat, tz=timezone.utc) if self.iat else None


def _client_body(
    client_id: str,
    client_secret: str,
    name: str,
    scope: str,
    metadata: dict[str, Any],
) -> dict[str, Any]:
    return {
        "client_id": client_id,
        "client_secret": client_secret,
        "client_name": name,
        "grant_types": ["client_credentials"],
        "response_types": ["token"],
        "scope": scope,
        "token_endpoint_auth_method": "client_secret_basic",
        "metadata": metadata,
    }


class OAuth2ProviderClient:
    """Async wrapper around the OAuth2 provider's admin and public APIs."""

    def __init__(
        self,
        public_url: str,
        admin_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._public_url = public_url.rstrip("/")
        self._admin_url = admin_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is None:
            await self.open()
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            log.error("oauth2.unreachable", url=url, error=str(exc))
            raise ProviderUnavailable(f"oauth2 provider unreachable: {exc}") from exc
        if resp.status_code >= 500:
            log.error("oauth2.server_error", url=url, status=resp.status_code)
            raise ProviderUnavailable(
                f"oauth2 provider returned {resp.status_code}", resp.status_code
            )
        return resp

    # --- Admin API ---

    async def create_client(
        self,
        client_id: str,
        client_secret: str,
        name: str,
        scope: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> RemoteClient:
        resp = await self._request(
            "POST",
            f"{self._admin_url}/admin/clients",
            json=_client_body(client_id, client_secret, name, scope, metadata or {}),
        )
        if resp.status_code not in (200, 201):
            raise ProviderError(f"client create failed with {resp.status_code}", resp.status_code)
        log.info("oauth2.client_created_remote", client_id=client_id)
        try:
            return RemoteClient.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise MalformedResponse(
                f"malformed client create payload: {exc}", resp.status_code
            ) from exc

    async def get_client(self, client_id: str) -> RemoteClient:
        resp = await self._request("GET", f"{self._admin_url}/admin/clients/{client_id}")
        if resp.status_code == 404:
            raise OAuth2ClientNotFound(f"client {client_id} not found", 404)
        if resp.status_code != 200:
            raise ProviderError(f"client get failed with {resp.status_code}", resp.status_code)
        return RemoteClient.model_validate(resp.json())

    async def set_client_secret(self, client_id: str, client_secret: str) -> RemoteClient:
        """Replace the client with an identical one carrying a new secret."""
        current = await self.get_client(client_id)
        resp = await self._request(
            "PUT",
            f"{self._admin_url}/admin/clients/{client_id}",
            json=_client_body(
                client_id, client_secret, current.client_name, current.scope, current.metadata
            ),
        )
        if resp.status_code == 404:
            raise OAuth2ClientNotFound(f"client {client_id} not found", 404)
        if resp.status_code != 200:
            raise ProviderError(f"client update failed with {resp.status_code}", resp.status_code)
        log.info("oauth2.client_secret_rotated_remote", client_id=client_id)
        return RemoteClient.model_validate(resp.json())

    async def delete_client(self, client_id: str) -> None:
        resp = await self._request("DELETE", f"{self._admin_url}/admin/clients/{client_id}")
        if resp.status_code == 404:
            raise OAuth2ClientNotFound(f"client {client_id} not found", 404)
        if resp.status_code not in (200, 204):
            raise ProviderError(f"client delete failed with {resp.status_code}", resp.status_code)
        log.info("oauth2.client_deleted_remote", client_id=client_id)

    async def introspect(self, token: str) -> Introspection:
        resp = await self._request(
            "POST",
            f"{self._admin_url}/admin/oauth2/introspect",
            data={"token": token},
        )
        if resp.status_code != 200:
            raise ProviderError(f"introspection failed with {resp.status_code}", resp.status_code)
        return Introspection.model_validate(resp.json())

    # --- Public API ---

    async def exchange_client_credentials(
        self,
        client_id: str,
        client_secret: str,
        scope: Optional[str] = None,
    ) -> TokenGrant:
        form = {"grant_type": "client_credentials"}
        if scope:
            form["scope"] = scope
        resp = await self._request(
            "POST",
            f"{self._public_url}/oauth2/token",
            data=form,
            auth=httpx.BasicAuth(client_id, client_secret),
        )
        if resp.status_code in (400, 401, 403):
            raise CredentialRejected("client credentials rejected", resp.status_code)
        if resp.status_code != 200:
            raise ProviderError(f"token exchange failed with {resp.status_code}", resp.status_code)
        return TokenGrant.model_validate(resp.json())
