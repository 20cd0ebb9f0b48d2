"""Authenticated forwarding endpoint (``/agp``) and its anonymous sibling (``/dyn``)."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from vault_gateway.auth.supabase import UserResolver
from vault_gateway.errors import (
    AuthNotConfiguredError,
    ForbiddenTargetError,
    RateLimitedError,
    UpstreamTimeoutError,
    UpstreamUnreachableError,
    ValidationError,
)
from vault_gateway.gateway.allowlist import TargetAllowlist
from vault_gateway.gateway.headers import (
    apply_target_authorization,
    build_forward_headers,
    is_hosted_auth_bearer,
)
from vault_gateway.gateway.ratelimit import FixedWindowRateLimiter
from vault_gateway.gateway.relay import relay_response
from vault_gateway.transport.messages import InboundRequest, OutboundResponse, error_response
from vault_gateway.utils.http import is_absolute_url

logger = logging.getLogger(__name__)

_BODYLESS_METHODS = frozenset({"GET", "HEAD"})


@dataclass(frozen=True)
class GatewayPolicy:
    """Per-route behaviour of a ``ProxyGateway``.

    ``require_auth=False`` is anonymous mode: no bearer check, rate limit by IP.
    ``forward_caller_authorization`` forwards the caller's own Authorization
    header (minus hosted-auth JWTs) instead of the X-Target-Authorization
    override.
    """

    name: str = "agp"
    require_auth: bool = True
    max_requests: int = 50
    window_seconds: float = 60.0
    timeout_seconds: float = 30.0
    allow_set_cookie: bool = False
    forward_caller_authorization: bool = False


def prepare_body(
    method: str,
    inbound_content_type: str | None,
    body: bytes | str | dict[str, Any] | list[Any] | None,
    forward_headers: dict[str, str],
) -> bytes | None:
    """Encode the body to send upstream.

    GET/HEAD never carry a body. A JSON object or list is serialized and,
    when the caller sent no content type, labelled ``application/json``.
    """
    if method in _BODYLESS_METHODS or body is None:
        return None
    if isinstance(body, bytes):
        return body or None
    if isinstance(body, str):
        return body.encode("utf-8")
    if not inbound_content_type:
        forward_headers["content-type"] = "application/json"
    return json.dumps(body).encode("utf-8")


class ProxyGateway:
    """Forward a caller's request to an allow-listed upstream.

    Stages: validate -> authorize -> rate-limit -> prepare -> forward -> relay.
    Any ``GatewayError`` short-circuits to its mapped JSON error response.
    """

    def __init__(
        self,
        *,
        policy: GatewayPolicy,
        allowlist: TargetAllowlist,
        rate_limiter: FixedWindowRateLimiter,
        client: httpx.AsyncClient,
        user_resolver: UserResolver | None = None,
    ) -> None:
        if policy.require_auth and user_resolver is None:
            raise ValueError(f"{policy.name}: require_auth needs a user resolver")
        self.policy = policy
        self.allowlist = allowlist
        self.rate_limiter = rate_limiter
        self._client = client
        self._user_resolver = user_resolver

    async def handle(self, request: InboundRequest) -> OutboundResponse:
        try:
            target_url = self._validate(request)
            await self._authorize(request)
            self._check_rate_limit(request)
            forward_headers, body = self._prepare(request, target_url)
            upstream = await self._forward(
                request.method.upper(), target_url, forward_headers, body
            )
            try:
                return await relay_response(upstream, allow_set_cookie=self.policy.allow_set_cookie)
            except httpx.HTTPError as exc:
                raise UpstreamUnreachableError(details=type(exc).__name__) from exc
        except Exception as exc:
            # GatewayError maps to its status; anything else is logged as a 500.
            return error_response(exc)

    def _validate(self, request: InboundRequest) -> str:
        target_url = request.query.get("url")
        if not target_url:
            raise ValidationError("Missing url query parameter")
        if not is_absolute_url(target_url):
            raise ValidationError("Invalid URL format")
        return target_url

    async def _authorize(self, request: InboundRequest) -> None:
        if not self.policy.require_auth:
            return
        if self._user_resolver is None:
            raise AuthNotConfiguredError()
        request.user = await self._user_resolver.require_user(request)

    def _rate_limit_key(self, request: InboundRequest) -> str:
        if request.user is not None:
            return f"{self.policy.name}:user:{request.user.id}"
        return f"{self.policy.name}:ip:{request.client_ip}"

    def _check_rate_limit(self, request: InboundRequest) -> None:
        key = self._rate_limit_key(request)
        if self.rate_limiter.allow(key, self.policy.max_requests, self.policy.window_seconds):
            return
        retry_after = self.rate_limiter.retry_after(key)
        logger.warning("Rate limit exceeded for %s (retry after %ss)", key, retry_after)
        raise RateLimitedError(retry_after)

    def _prepare(
        self, request: InboundRequest, target_url: str
    ) -> tuple[dict[str, str], bytes | None]:
        if not self.allowlist.is_allowed(target_url):
            logger.warning("Rejected forward to non-allow-listed target: %s", target_url)
            raise ForbiddenTargetError(target_url)

        if self.policy.forward_caller_authorization:
            forward_headers = build_forward_headers(request.headers, omit_cookies=True)
            caller_auth = forward_headers.get("authorization")
            if caller_auth and is_hosted_auth_bearer(caller_auth):
                del forward_headers["authorization"]
        else:
            forward_headers = build_forward_headers(
                request.headers, omit_authorization=True, omit_cookies=True
            )
            apply_target_authorization(request.headers, forward_headers)

        body = prepare_body(
            request.method.upper(),
            request.headers.get("content-type"),
            request.body,
            forward_headers,
        )
        return forward_headers, body

    async def _forward(
        self,
        method: str,
        target_url: str,
        headers: dict[str, str],
        body: bytes | None,
    ) -> httpx.Response:
        try:
            upstream_request = self._client.build_request(
                method, target_url, headers=headers, content=body
            )
        except httpx.InvalidURL as exc:
            raise ValidationError("Invalid URL format") from exc
        try:
            return await asyncio.wait_for(
                self._client.send(upstream_request, stream=True),
                timeout=self.policy.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "Upstream timeout after %ss: %s %s", self.policy.timeout_seconds, method, target_url
            )
            raise UpstreamTimeoutError(self.policy.timeout_seconds) from exc
        except httpx.TimeoutException as exc:
            logger.warning("Upstream timeout: %s %s", method, target_url)
            raise UpstreamTimeoutError(self.policy.timeout_seconds) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Upstream unreachable: %s %s (%s)", method, target_url, type(exc).__name__
            )
            raise UpstreamUnreachableError(details=type(exc).__name__) from exc
