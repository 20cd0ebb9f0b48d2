"""Shared OAuth 2.0 authorization-code client for external identity providers."""

from __future__ import annotations

import base64
import logging
from abc import ABC
from dataclasses import dataclass
from typing import Any, ClassVar
from urllib.parse import urlencode

import httpx

from vault_gateway.errors import ProviderNotConfiguredError, TokenExchangeError, TokenRefreshError
from vault_gateway.utils.masking import token_error_summary

logger = logging.getLogger(__name__)

# Provider-returned token fields, relayed as-is.
OAuthTokens = dict[str, Any]

# Sentinel: defer to the shared client's timeout.
USE_CLIENT_TIMEOUT: Any = object()


@dataclass(frozen=True)
class ProviderConfig:
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None

    def __repr__(self) -> str:
        return (
            f"ProviderConfig(client_id={self.client_id!r}, "
            f"client_secret={'***' if self.client_secret else None}, "
            f"redirect_uri={self.redirect_uri!r})"
        )


def basic_auth_header(client_id: str, client_secret: str) -> str:
    raw = f"{client_id}:{client_secret}".encode("utf-8")
    return f"Basic {base64.b64encode(raw).decode('ascii')}"


class OAuthProvider(ABC):
    """One external identity provider.

    Subclasses supply endpoints and scopes as class attributes. How client
    credentials travel to the token endpoint is behaviour, chosen by
    overriding ``_apply_client_auth``.
    """

    name: ClassVar[str]
    authorize_endpoint: ClassVar[str]
    token_endpoint: ClassVar[str]
    scopes: ClassVar[tuple[str, ...]]
    extra_authorize_params: ClassVar[dict[str, str]] = {}
    requires_client_secret: ClassVar[bool] = True

    def __init__(
        self,
        config: ProviderConfig,
        client: httpx.AsyncClient,
        timeout: float | None = USE_CLIENT_TIMEOUT,
    ) -> None:
        self.config = config
        self._client = client
        self._timeout = timeout

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    def is_configured(self) -> bool:
        return bool(self.config.client_id and self.config.redirect_uri)

    def _require_configured(self) -> None:
        if not self.is_configured():
            raise ProviderNotConfiguredError(self.name)

    def _require_token_credentials(self) -> None:
        self._require_configured()
        if self.requires_client_secret and not self.config.client_secret:
            raise ProviderNotConfiguredError(self.name)

    def build_authorization_url(self, state: str) -> str:
        self._require_configured()
        params: dict[str, str] = {
            "client_id": self.config.client_id or "",
            "response_type": "code",
            "redirect_uri": self.config.redirect_uri or "",
        }
        params.update(self.extra_authorize_params)
        params["scope"] = self.scope
        params["state"] = state
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str) -> OAuthTokens:
        self._require_token_credentials()
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_uri or "",
        }
        return await self._token_request(data, TokenExchangeError)

    async def refresh_tokens(self, refresh_token: str) -> OAuthTokens:
        self._require_token_credentials()
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return await self._token_request(data, TokenRefreshError)

    def _apply_client_auth(self, headers: dict[str, str], data: dict[str, str]) -> None:
        """Send client credentials in the form body (client_secret_post)."""
        data["client_id"] = self.config.client_id or ""
        if self.config.client_secret:
            data["client_secret"] = self.config.client_secret

    def _extend_token_request(self, data: dict[str, str]) -> None:
        """Hook for provider-specific token request fields."""

    async def _token_request(
        self,
        data: dict[str, str],
        error_cls: type[TokenExchangeError] | type[TokenRefreshError],
    ) -> OAuthTokens:
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        self._apply_client_auth(headers, data)
        self._extend_token_request(data)

        request_kwargs: dict[str, Any] = {"data": data, "headers": headers}
        if self._timeout is not USE_CLIENT_TIMEOUT:
            request_kwargs["timeout"] = self._timeout

        try:
            resp = await self._client.post(self.token_endpoint, **request_kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s token request failed: %s", self.name, type(exc).__name__)
            raise error_cls(self.name, details={"cause": type(exc).__name__}) from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            logger.warning(
                "%s token endpoint returned non-JSON response (status=%s)",
                self.name,
                resp.status_code,
            )
            raise error_cls(self.name, details={"status": resp.status_code}) from exc

        if not isinstance(payload, dict):
            logger.warning("%s token endpoint returned a non-object JSON body", self.name)
            raise error_cls(self.name, details={"status": resp.status_code})

        if not 200 <= resp.status_code < 300:
            logger.warning(
                "%s token endpoint rejected request: status=%s body=%s",
                self.name,
                resp.status_code,
                token_error_summary(payload),
            )
            context: dict[str, Any] = {"providerStatus": resp.status_code}
            if isinstance(payload.get("error"), str):
                context["providerError"] = payload["error"]
            raise error_cls(self.name, details={"status": resp.status_code}, context=context)

        return payload
