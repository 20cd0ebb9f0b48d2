"""Outbound forwarding: allow-list, header policy, rate limiting and relay."""

from vault_gateway.gateway.allowlist import TargetAllowlist
from vault_gateway.gateway.proxy import GatewayPolicy, ProxyGateway
from vault_gateway.gateway.ratelimit import FixedWindowRateLimiter

__all__ = ["FixedWindowRateLimiter", "GatewayPolicy", "ProxyGateway", "TargetAllowlist"]
