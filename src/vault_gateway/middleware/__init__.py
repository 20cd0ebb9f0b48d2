"""Starlette middleware."""

from vault_gateway.middleware.security import BodySizeLimitMiddleware, get_client_ip

__all__ = ["BodySizeLimitMiddleware", "get_client_ip"]
