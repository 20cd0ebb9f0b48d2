"""Bearer-token validation against the hosted auth provider (Supabase)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import httpx

from vault_gateway.auth.context import AuthenticatedUser
from vault_gateway.errors import AuthInvalidError, AuthNotConfiguredError, AuthRequiredError
from vault_gateway.utils.http import is_absolute_url

if TYPE_CHECKING:
    from vault_gateway.transport.messages import InboundRequest

logger = logging.getLogger(__name__)

_USER_LOOKUP_TIMEOUT_SECONDS = 10.0


class UserResolver(Protocol):
    """The one operation the gateway needs from the auth collaborator."""

    async def require_user(self, request: InboundRequest) -> AuthenticatedUser:
        """Return the caller or raise AuthRequiredError/AuthInvalidError/AuthNotConfiguredError."""
        ...


def extract_bearer_token(request: InboundRequest) -> str:
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        raise AuthRequiredError("Missing Authorization header")
    token = auth_header[len("Bearer ") :].strip()
    if not token:
        raise AuthRequiredError("Missing Authorization header")
    return token


class SupabaseUserResolver:
    """Validate bearer tokens with ``GET {supabase_url}/auth/v1/user``."""

    def __init__(
        self,
        supabase_url: str | None,
        anon_key: str | None,
        client: httpx.AsyncClient,
    ) -> None:
        self._base_url = supabase_url.rstrip("/") if supabase_url else None
        self._anon_key = anon_key
        self._client = client
        if self._base_url and not is_absolute_url(self._base_url):
            logger.warning("SUPABASE_URL is not a valid absolute URL; auth is disabled")
            self._base_url = None

    @property
    def configured(self) -> bool:
        return bool(self._base_url and self._anon_key)

    async def require_user(self, request: InboundRequest) -> AuthenticatedUser:
        if not self.configured:
            raise AuthNotConfiguredError()

        token = extract_bearer_token(request)
        logger.debug("Verifying bearer token (length=%d)", len(token))

        try:
            resp = await self._client.get(
                f"{self._base_url}/auth/v1/user",
                headers={
                    "apikey": self._anon_key or "",
                    "Authorization": f"Bearer {token}",
                },
                timeout=_USER_LOOKUP_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as exc:
            logger.error("Auth verification failed: %s", type(exc).__name__)
            raise AuthInvalidError("Auth verification failed") from exc

        if resp.status_code != 200:
            logger.warning("Hosted auth rejected token: status=%s", resp.status_code)
            raise AuthInvalidError("Invalid token")

        try:
            data = resp.json()
        except ValueError as exc:
            logger.warning("Hosted auth returned non-JSON user payload")
            raise AuthInvalidError("Auth verification failed") from exc

        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            raise AuthInvalidError("Invalid token")

        return AuthenticatedUser(id=str(user_id), email=data.get("email"), raw=data)
