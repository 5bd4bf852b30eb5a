"""
Identity provider adapter (Ory Kratos).

Public API: session lookup (``/sessions/whoami``).
Admin API: identity lookup/listing and session revocation.

Every call is bounded by the configured timeout. Transport errors and 5xx
responses surface as ``ProviderUnavailable``; a definite "no" from the
provider is ``CredentialRejected``.
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import urljoin

import httpx
import structlog
from pydantic import ValidationError

from userms_shared.schemas.identity import Identity, Session

log = structlog.get_logger()

LIST_PAGE_SIZE = 250


class ProviderError(Exception):
    """The provider answered with an unexpected status or body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderUnavailable(ProviderError):
    """Transport failure, timeout or 5xx from the provider."""


class CredentialRejected(ProviderError):
    """The provider refused the presented credential."""


class IdentityNotFound(ProviderError):
    pass


class MalformedResponse(ProviderError):
    """A success status whose body could not be parsed. The provider may have
    applied the write."""


class IdentityClient:
    """Thin async wrapper around the identity provider's HTTP APIs."""

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
            log.error("identity.unreachable", url=url, error=str(exc))
            raise ProviderUnavailable(f"identity provider unreachable: {exc}") from exc
        if resp.status_code >= 500:
            log.error("identity.server_error", url=url, status=resp.status_code)
            raise ProviderUnavailable(
                f"identity provider returned {resp.status_code}", resp.status_code
            )
        return resp

    # --- Public API ---

    async def to_session(
        self,
        session_token: Optional[str] = None,
        cookie: Optional[str] = None,
    ) -> Session:
        """Resolve a session token or a raw Cookie header into a session."""
        headers: dict[str, str] = {"Accept": "application/json"}
        if session_token:
            headers["X-Session-Token"] = session_token
        if cookie:
            headers["Cookie"] = cookie
        resp = await self._request("GET", f"{self._public_url}/sessions/whoami", headers=headers)
        if resp.status_code in (401, 403):
            raise CredentialRejected("session rejected", resp.status_code)
        if resp.status_code != 200:
            raise ProviderError(f"unexpected whoami status {resp.status_code}", resp.status_code)
        try:
            session = Session.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise MalformedResponse(f"malformed session payload: {exc}", resp.status_code) from exc
        if not session.active:
            raise CredentialRejected("session inactive", resp.status_code)
        return session

    # --- Admin API ---

    async def get_identity(self, identity_id: str) -> Identity:
        resp = await self._request(
            "GET",
            f"{self._admin_url}/admin/identities/{identity_id}",
            params={"include_credential": "oidc"},
        )
        if resp.status_code == 404:
            raise IdentityNotFound(f"identity {identity_id} not found", 404)
        if resp.status_code != 200:
            raise ProviderError(f"unexpected identity status {resp.status_code}", resp.status_code)
        return Identity.model_validate(resp.json())

    async def list_identities(self) -> list[Identity]:
        """All identities, following the provider's ``Link: rel=next`` pagination."""
        identities: list[Identity] = []
        url: Optional[str] = f"{self._admin_url}/admin/identities"
        params: Optional[dict[str, Any]] = {"page_size": LIST_PAGE_SIZE}
        while url:
            resp = await self._request("GET", url, params=params)
            if resp.status_code != 200:
                raise ProviderError(
                    f"unexpected identities status {resp.status_code}", resp.status_code
                )
            identities.extend(Identity.model_validate(item) for item in resp.json())
            next_link = resp.links.get("next", {}).get("url")
            url = urljoin(self._admin_url + "/", next_link) if next_link else None
            params = None
        return identities

    async def disable_session(self, session_id: str) -> None:
        resp = await self._request("DELETE", f"{self._admin_url}/admin/sessions/{session_id}")
        if resp.status_code == 404:
            return
        if resp.status_code not in (200, 204):
            raise ProviderError(f"unexpected session delete status {resp.status_code}", resp.status_code)
        log.info("identity.session_disabled", session_id=session_id)
