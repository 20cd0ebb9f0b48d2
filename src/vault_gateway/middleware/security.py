"""Pre-route request guards: body size limit and client IP resolution."""

from __future__ import annotations

import logging
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import ClientDisconnect, Request
from starlette.responses import JSONResponse, Response

from vault_gateway.errors import GatewayError, PayloadTooLargeError, ValidationError, to_http_error
from vault_gateway.utils.http import first_forwarded_value

logger = logging.getLogger(__name__)

_EXEMPT_PATHS = frozenset({"/health"})
_BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class BodySizeLimitExceeded(Exception):
    """Raised when a streamed request body crosses the configured limit."""


def _sanitize_ip(value: str) -> str:
    """Strip control characters from a caller-supplied IP string."""
    return "".join(c for c in value if 0x20 <= ord(c) < 0x7F)


def get_client_ip(request: Request, trust_forwarded_headers: bool = False) -> str:
    """Resolve the caller IP, honouring proxy headers only when trusted."""
    if trust_forwarded_headers:
        forwarded_for = first_forwarded_value(request.headers.get("x-forwarded-for"))
        if forwarded_for:
            return _sanitize_ip(forwarded_for)
        real_ip = request.headers.get("x-real-ip")
        if real_ip and real_ip.strip():
            return _sanitize_ip(real_ip.strip())

    if request.client:
        return request.client.host
    return "unknown"


def _error_json(exc: GatewayError) -> JSONResponse:
    status, body = to_http_error(exc)
    return JSONResponse(status_code=status, content=body)


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies larger than ``max_body_size_bytes`` with 413.

    Content-Length is only a fast path; bodies on POST/PUT/PATCH/DELETE and
    chunked uploads are also measured while streaming.
    """

    EXEMPT_PATHS = _EXEMPT_PATHS

    def __init__(self, app: Callable, max_body_size_bytes: int) -> None:
        super().__init__(app)
        self.max_body_size_bytes = max_body_size_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                size = int(content_length)
                if size < 0:
                    raise ValueError("negative content-length")
                if size > self.max_body_size_bytes:
                    logger.warning(
                        "Request body too large: %d > %d", size, self.max_body_size_bytes
                    )
                    return _error_json(PayloadTooLargeError(self.max_body_size_bytes))
            except ValueError:
                logger.warning("Invalid Content-Length header: %r", content_length)

        transfer_encoding = request.headers.get("transfer-encoding", "").lower()
        if "chunked" in transfer_encoding or request.method in _BODY_METHODS:
            try:
                await self._read_body_limited(request)
            except BodySizeLimitExceeded:
                logger.warning("Request body exceeded limit during streaming")
                return _error_json(PayloadTooLargeError(self.max_body_size_bytes))
            except ClientDisconnect:
                logger.warning("Client disconnected while sending request body")
                return _error_json(ValidationError("Failed to read request body"))

        return await call_next(request)

    async def _read_body_limited(self, request: Request) -> int:
        buf = bytearray()
        async for chunk in request.stream():
            buf.extend(chunk)
            if len(buf) > self.max_body_size_bytes:
                raise BodySizeLimitExceeded(f"Body exceeded {self.max_body_size_bytes} bytes")
        # Cache so the route handler can read the body again.
        request._body = bytes(buf)
        return len(buf)
