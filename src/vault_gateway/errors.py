"""Error taxonomy shared by the proxy gateway and the OAuth broker.

Every expected failure is a ``GatewayError`` carrying its HTTP status and a
machine-readable code. ``to_http_error`` is the single place where an
exception becomes a status code and JSON body.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Base class for classified gateway failures."""

    status: int = 500
    code: str = "gateway_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        context: dict[str, Any] | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        # Merged into the JSON error body.
        self.context: dict[str, Any] = dict(context or {})
        # Logged only, never sent to the caller.
        self.details = details


class ValidationError(GatewayError):
    status = 400
    code = "invalid_request"


class ForbiddenTargetError(GatewayError):
    status = 403
    code = "target_not_allowed"

    def __init__(self, url: str) -> None:
        super().__init__("Target not allowed", details={"url": url})


class AuthRequiredError(GatewayError):
    status = 401
    code = "auth_required"


class AuthInvalidError(GatewayError):
    status = 401
    code = "auth_invalid"


class AuthNotConfiguredError(GatewayError):
    status = 500
    code = "auth_not_configured"

    def __init__(self) -> None:
        super().__init__("Server auth not configured")


class RateLimitedError(GatewayError):
    status = 429
    code = "rate_limited"

    def __init__(self, retry_after: int) -> None:
        super().__init__("Too many requests", context={"retryAfter": retry_after})
        self.retry_after = retry_after


class PayloadTooLargeError(GatewayError):
    status = 413
    code = "payload_too_large"

    def __init__(self, limit_bytes: int) -> None:
        super().__init__("Request body too large", context={"limitBytes": limit_bytes})


class UpstreamUnreachableError(GatewayError):
    status = 502
    code = "upstream_unreachable"

    def __init__(self, details: Any = None) -> None:
        super().__init__("Upstream unreachable", details=details)


class UpstreamTimeoutError(GatewayError):
    status = 504
    code = "upstream_timeout"

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__("Request timeout", details={"timeout_seconds": timeout_seconds})


class ProviderNotConfiguredError(GatewayError):
    status = 500
    code = "provider_not_configured"

    def __init__(self, provider: str) -> None:
        super().__init__(f"Provider not configured: {provider}")
        self.provider = provider


class UnsupportedProviderError(GatewayError):
    status = 400
    code = "unsupported_provider"

    def __init__(self, provider: str) -> None:
        super().__init__(f"Unsupported provider: {provider}")
        self.provider = provider


class InvalidStateError(GatewayError):
    status = 400
    code = "invalid_state"

    def __init__(self) -> None:
        super().__init__("Invalid OAuth state")


class TokenExchangeError(GatewayError):
    status = 502
    code = "token_exchange_failed"

    def __init__(
        self, provider: str, details: Any = None, context: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            f"Token exchange failed for {provider}", details=details, context=context
        )
        self.provider = provider


class TokenRefreshError(GatewayError):
    status = 502
    code = "token_refresh_failed"

    def __init__(
        self, provider: str, details: Any = None, context: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            f"Token refresh failed for {provider}", details=details, context=context
        )
        self.provider = provider


class HandoffStoreFullError(GatewayError):
    status = 503
    code = "temporarily_unavailable"

    def __init__(self) -> None:
        super().__init__("Too many pending OAuth handoffs")


def to_http_error(exc: BaseException) -> tuple[int, dict[str, Any]]:
    """Translate an exception into ``(status, body)``."""
    if isinstance(exc, GatewayError):
        body: dict[str, Any] = {"error": exc.message, "code": exc.code}
        body.update(exc.context)
        return exc.status, body
    logger.error("Unhandled gateway exception", exc_info=exc)
    return 500, {"error": "Internal Server Error"}
