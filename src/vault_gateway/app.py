"""Application context assembly."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from vault_gateway.auth.supabase import SupabaseUserResolver, UserResolver
from vault_gateway.config import Settings, load_settings
from vault_gateway.gateway.allowlist import TargetAllowlist
from vault_gateway.gateway.proxy import GatewayPolicy, ProxyGateway
from vault_gateway.gateway.ratelimit import FixedWindowRateLimiter
from vault_gateway.integrations.broker import OAuthBroker
from vault_gateway.integrations.handoff import HandoffStore
from vault_gateway.integrations.providers import ProviderConfig
from vault_gateway.integrations.registry import ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass
class GatewayContext:
    """Every long-lived component of one gateway process.

    Stores are owned here rather than at module level so each app (and each
    test) gets isolated rate-limit and handoff state.
    """

    settings: Settings
    client: httpx.AsyncClient
    user_resolver: UserResolver
    allowlist: TargetAllowlist
    rate_limiter: FixedWindowRateLimiter
    agp: ProxyGateway
    dyn: ProxyGateway | None
    registry: ProviderRegistry
    handoffs: HandoffStore
    broker: OAuthBroker

    async def aclose(self) -> None:
        await self.client.aclose()


def create_http_client() -> httpx.AsyncClient:
    # No client-wide timeout: each caller sets its own bound.
    return httpx.AsyncClient(timeout=None, follow_redirects=False)


def build_context(
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
    user_resolver: UserResolver | None = None,
) -> GatewayContext:
    """Wire the gateway components from settings.

    ``client`` and ``user_resolver`` may be injected; otherwise a shared
    httpx client and the Supabase resolver are created.
    """
    settings = settings or load_settings()
    client = client or create_http_client()
    if user_resolver is None:
        user_resolver = SupabaseUserResolver(
            settings.auth.supabase_url, settings.auth.supabase_anon_key, client
        )

    gateway_settings = settings.gateway
    allowlist = TargetAllowlist(gateway_settings.allowed_target_hosts)
    if allowlist.is_open:
        logger.warning(
            "ALLOWED_TARGET_HOSTS is empty: the forwarding endpoints accept any http(s) target"
        )
    if not gateway_settings.require_auth:
        logger.warning("AGP_REQUIRE_AUTH is disabled: /agp runs in anonymous mode")

    rate_limiter = FixedWindowRateLimiter()
    agp = ProxyGateway(
        policy=GatewayPolicy(
            name="agp",
            require_auth=gateway_settings.require_auth,
            max_requests=gateway_settings.rate_limit_max_requests,
            window_seconds=gateway_settings.rate_limit_window_seconds,
            timeout_seconds=gateway_settings.timeout_seconds,
            allow_set_cookie=gateway_settings.allow_set_cookie,
        ),
        allowlist=allowlist,
        rate_limiter=rate_limiter,
        client=client,
        user_resolver=user_resolver,
    )

    dyn = None
    if gateway_settings.dyn_enabled:
        dyn = ProxyGateway(
            policy=GatewayPolicy(
                name="dyn",
                require_auth=False,
                max_requests=gateway_settings.rate_limit_max_requests,
                window_seconds=gateway_settings.rate_limit_window_seconds,
                timeout_seconds=gateway_settings.timeout_seconds,
                allow_set_cookie=False,
                forward_caller_authorization=True,
            ),
            allowlist=allowlist,
            rate_limiter=rate_limiter,
            client=client,
        )

    oauth = settings.oauth
    registry = ProviderRegistry.from_config(
        {
            name: ProviderConfig(
                client_id=provider.client_id,
                client_secret=provider.client_secret,
                redirect_uri=provider.redirect_uri,
            )
            for name, provider in oauth.providers.items()
        },
        client,
        timeout=oauth.token_timeout_seconds,
    )
    handoffs = HandoffStore()
    broker = OAuthBroker(
        registry=registry,
        store=handoffs,
        user_resolver=user_resolver,
        frontend_url=oauth.frontend_redirect_url,
        state_ttl_seconds=oauth.state_ttl_seconds,
        handoff_ttl_seconds=oauth.handoff_ttl_seconds,
    )

    return GatewayContext(
        settings=settings,
        client=client,
        user_resolver=user_resolver,
        allowlist=allowlist,
        rate_limiter=rate_limiter,
        agp=agp,
        dyn=dyn,
        registry=registry,
        handoffs=handoffs,
        broker=broker,
    )
