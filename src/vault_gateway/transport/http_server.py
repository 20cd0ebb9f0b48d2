"""Starlette HTTP server assembly.

Routes are thin adapters: each converts the Starlette request to an
``InboundRequest``, awaits the framework-neutral core handler and converts
the ``OutboundResponse`` back.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import httpx
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from vault_gateway.app import build_context
from vault_gateway.auth.supabase import UserResolver
from vault_gateway.config import Settings, load_settings
from vault_gateway.middleware.security import BodySizeLimitMiddleware, get_client_ip
from vault_gateway.transport.messages import Headers, InboundRequest, OutboundResponse

logger = logging.getLogger(__name__)

CoreHandler = Callable[[InboundRequest], Awaitable[OutboundResponse]]

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


async def to_inbound_request(
    request: Request, trust_forwarded_headers: bool = False
) -> InboundRequest:
    body = await request.body()
    return InboundRequest(
        method=request.method,
        path=request.url.path,
        headers=Headers(request.headers.items()),
        query=dict(request.query_params),
        path_params=dict(request.path_params),
        body=body or None,
        client_ip=get_client_ip(request, trust_forwarded_headers),
    )


async def _stream_then_close(
    stream: AsyncIterator[bytes], on_close: Callable[[], Awaitable[None]] | None
) -> AsyncIterator[bytes]:
    try:
        async for chunk in stream:
            yield chunk
    finally:
        if on_close is not None:
            await on_close()


def to_starlette_response(outbound: OutboundResponse) -> Response:
    response: Response
    if outbound.stream is not None:
        response = StreamingResponse(
            _stream_then_close(outbound.stream, outbound.on_close),
            status_code=outbound.status,
        )
    else:
        response = Response(content=outbound.body, status_code=outbound.status)
    for name, value in outbound.headers:
        # append, not set: set-cookie may repeat.
        response.headers.append(name, value)
    return response


def _endpoint(handler: CoreHandler, trust_forwarded_headers: bool):
    async def endpoint(request: Request) -> Response:
        inbound = await to_inbound_request(request, trust_forwarded_headers)
        return to_starlette_response(await handler(inbound))

    return endpoint


def create_http_app(
    settings: Settings | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    user_resolver: UserResolver | None = None,
) -> Starlette:
    """Create the gateway HTTP application."""
    settings = settings or load_settings()
    owns_client = client is None
    context = build_context(settings, client=client, user_resolver=user_resolver)
    trust_forwarded = settings.server.trust_forwarded_headers

    def wrap(handler: CoreHandler):
        return _endpoint(handler, trust_forwarded)

    broker = context.broker

    async def index_handler(request: Request) -> Response:
        oauth = {item["name"]: item["configured"] for item in context.registry.list()}
        return JSONResponse({"ok": True, "oauth": oauth})

    async def health_handler(request: Request) -> Response:
        return JSONResponse({"status": "healthy"})

    routes = [
        Route("/", endpoint=index_handler, methods=["GET"]),
        Route("/health", endpoint=health_handler, methods=["GET"]),
        Route("/agp", endpoint=wrap(context.agp.handle), methods=PROXY_METHODS),
        Route("/integrations/oauth/start", endpoint=wrap(broker.start), methods=["GET"]),
        Route(
            "/integrations/oauth/callback/{provider}",
            endpoint=wrap(broker.callback),
            methods=["GET"],
        ),
        Route("/integrations/oauth/handoff", endpoint=wrap(broker.handoff), methods=["GET"]),
        Route("/integrations/oauth/refresh", endpoint=wrap(broker.refresh), methods=["POST"]),
        Route(
            "/integrations/oauth/providers", endpoint=wrap(broker.providers), methods=["GET"]
        ),
    ]
    if context.dyn is not None:
        routes.append(Route("/dyn", endpoint=wrap(context.dyn.handle), methods=PROXY_METHODS))

    middleware: list[Middleware] = [
        Middleware(
            BodySizeLimitMiddleware,
            max_body_size_bytes=settings.server.max_body_size_mb * 1024 * 1024,
        ),
    ]

    # CORS must be outermost so preflight requests get CORS headers first.
    if settings.server.allowed_origins:
        from starlette.middleware.cors import CORSMiddleware

        middleware.insert(
            0,
            Middleware(
                CORSMiddleware,
                allow_origins=list(settings.server.allowed_origins),
                allow_methods=PROXY_METHODS,
                allow_headers=[
                    "Authorization",
                    "Content-Type",
                    "Accept",
                    "X-Target-Authorization",
                ],
                allow_credentials=True,
            ),
        )

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info(
            "Gateway started: dyn=%s providers=%s",
            context.dyn is not None,
            ",".join(item["name"] for item in context.registry.list() if item["configured"])
            or "none",
        )
        try:
            yield
        finally:
            logger.info("Stopping gateway...")
            if owns_client:
                await context.aclose()

    app = Starlette(routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.context = context
    return app
