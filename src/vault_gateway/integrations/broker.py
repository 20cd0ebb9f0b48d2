"""OAuth broker: start, callback, handoff and refresh routes.

Flow: ``start`` issues a single-use state bound to the caller and provider,
the provider redirects the browser to ``callback``, which exchanges the code
and parks the tokens under a one-time ``handoff:<id>`` key. The frontend then
collects them through ``handoff``. Tokens never appear in a redirect URL.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from typing import Any
from urllib.parse import urlencode

from vault_gateway.auth.supabase import UserResolver
from vault_gateway.errors import GatewayError, InvalidStateError, ValidationError
from vault_gateway.integrations.handoff import HandoffStore
from vault_gateway.integrations.registry import ProviderRegistry
from vault_gateway.transport.messages import (
    InboundRequest,
    OutboundResponse,
    error_response,
    json_response,
    redirect_response,
)

logger = logging.getLogger(__name__)

STATE_PREFIX = "state:"
HANDOFF_PREFIX = "handoff:"


def sanitize_provider_error(value: str) -> str:
    """Reduce an upstream ``error`` value to a short, inert token."""
    return "".join(c for c in value[:64] if c.isalnum() or c in "_- ")


class OAuthBroker:
    def __init__(
        self,
        *,
        registry: ProviderRegistry,
        store: HandoffStore,
        user_resolver: UserResolver,
        frontend_url: str,
        state_ttl_seconds: float = 300.0,
        handoff_ttl_seconds: float = 300.0,
    ) -> None:
        self.registry = registry
        self.store = store
        self._user_resolver = user_resolver
        self._frontend_url = frontend_url
        self._state_ttl = state_ttl_seconds
        self._handoff_ttl = handoff_ttl_seconds

    def _frontend_redirect(self, params: dict[str, str]) -> OutboundResponse:
        return redirect_response(f"{self._frontend_url}?{urlencode(params)}")

    def _error_redirect(self, provider: str, reason: str) -> OutboundResponse:
        return self._frontend_redirect({"oauth": "error", "provider": provider, "reason": reason})

    async def start(self, request: InboundRequest) -> OutboundResponse:
        """Authenticated: return the provider authorization URL for the caller."""
        try:
            user = await self._user_resolver.require_user(request)
            provider_name = request.query.get("provider")
            if not provider_name:
                raise ValidationError("Missing provider")
            provider = self.registry.require(provider_name)

            state = secrets.token_urlsafe(32)
            url = provider.build_authorization_url(state)
            self.store.put(
                f"{STATE_PREFIX}{state}",
                {"user_id": user.id, "provider": provider.name},
                ttl=self._state_ttl,
            )
            logger.info("OAuth flow started: provider=%s user=%s", provider.name, user.id)
            return json_response({"url": url})
        except Exception as exc:
            return error_response(exc)

    async def callback(self, request: InboundRequest) -> OutboundResponse:
        """Public: provider redirect target. Always answers with a frontend redirect."""
        provider_name = request.path_params.get("provider", "")
        state = request.query.get("state") or ""
        upstream_error = request.query.get("error")

        if upstream_error:
            reason = sanitize_provider_error(upstream_error)
            logger.warning(
                "OAuth provider returned error: provider=%s error=%s", provider_name, reason
            )
            if state:
                # Burn the state; the flow is over either way.
                self.store.take(f"{STATE_PREFIX}{state}")
            return self._error_redirect(provider_name, reason)

        try:
            provider = self.registry.require(provider_name)
            state_info = self.store.take(f"{STATE_PREFIX}{state}") if state else None
            if not state_info or state_info.get("provider") != provider.name:
                raise InvalidStateError()

            code = request.query.get("code")
            if not code:
                raise ValidationError("Missing code in callback")

            tokens = await provider.exchange_code_for_tokens(code)
            handoff_id = f"{HANDOFF_PREFIX}{uuid.uuid4()}"
            self.store.put(
                handoff_id, {"provider": provider.name, "tokens": tokens}, ttl=self._handoff_ttl
            )
        except GatewayError as exc:
            logger.warning(
                "OAuth callback failed: provider=%s code=%s message=%s",
                provider_name,
                exc.code,
                exc.message,
            )
            return self._error_redirect(provider_name, exc.code)
        except Exception:
            logger.exception("Unexpected error in OAuth callback: provider=%s", provider_name)
            return self._error_redirect(provider_name, "exception")

        logger.info("OAuth tokens parked for handoff: provider=%s", provider.name)
        return self._frontend_redirect({"handoff": handoff_id, "provider": provider.name})

    async def handoff(self, request: InboundRequest) -> OutboundResponse:
        """Authenticated: release a parked token payload exactly once."""
        try:
            await self._user_resolver.require_user(request)
            handoff_id = request.query.get("id")
            if not handoff_id:
                raise ValidationError("Missing id")
            payload = None
            if handoff_id.startswith(HANDOFF_PREFIX):
                payload = self.store.take(handoff_id)
            if payload is None:
                return json_response({"error": "Not found or expired"}, status=404)
            return json_response(payload)
        except Exception as exc:
            return error_response(exc)

    async def refresh(self, request: InboundRequest) -> OutboundResponse:
        """Authenticated: exchange a refresh token for fresh tokens."""
        try:
            await self._user_resolver.require_user(request)
            body: Any = request.json()
            if not isinstance(body, dict):
                body = {}
            provider_name = body.get("provider")
            refresh_token = body.get("refresh_token")
            if (
                not isinstance(provider_name, str)
                or not isinstance(refresh_token, str)
                or not provider_name
                or not refresh_token
            ):
                raise ValidationError("Missing provider or refresh_token")
            provider = self.registry.require(provider_name)
            tokens = await provider.refresh_tokens(refresh_token)
            return json_response({"provider": provider.name, "tokens": tokens})
        except Exception as exc:
            return error_response(exc)

    async def providers(self, request: InboundRequest) -> OutboundResponse:
        return json_response({"providers": self.registry.list()})
