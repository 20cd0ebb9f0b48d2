"""Tests for ProxyGateway (the /agp and /dyn pipeline)."""

from __future__ import annotations

import asyncio
import base64
import json

import httpx
import pytest

from conftest import FakeUserResolver
from vault_gateway.gateway.allowlist import TargetAllowlist
from vault_gateway.gateway.proxy import GatewayPolicy, ProxyGateway, prepare_body
from vault_gateway.gateway.ratelimit import FixedWindowRateLimiter
from vault_gateway.transport.messages import Headers, InboundRequest


def _gateway(
    handler,
    *,
    policy: GatewayPolicy | None = None,
    hosts: tuple[str, ...] = ("api.example.com",),
    resolver=None,
    limiter: FixedWindowRateLimiter | None = None,
) -> ProxyGateway:
    policy = policy or GatewayPolicy()
    if resolver is None and policy.require_auth:
        resolver = FakeUserResolver()
    return ProxyGateway(
        policy=policy,
        allowlist=TargetAllowlist(hosts),
        rate_limiter=limiter if limiter is not None else FixedWindowRateLimiter(),
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        user_resolver=resolver,
    )


def _request(
    url: str | None = "https://api.example.com/items",
    *,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    body=None,
    client_ip: str = "203.0.113.7",
    token: str | None = "good-token",
) -> InboundRequest:
    merged: dict[str, str] = {}
    if token is not None:
        merged["Authorization"] = f"Bearer {token}"
    merged.update(headers or {})
    return InboundRequest(
        method=method,
        path="/agp",
        headers=Headers(merged),
        query={} if url is None else {"url": url},
        body=body,
        client_ip=client_ip,
    )


def _ok_json(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"ok": True})


async def _drain(response) -> bytes:
    chunks = [chunk async for chunk in response.stream]
    if response.on_close is not None:
        await response.on_close()
    return b"".join(chunks)


class TestValidation:
    @pytest.mark.asyncio
    async def test_missing_url(self) -> None:
        response = await _gateway(_ok_json).handle(_request(None))
        assert response.status == 400
        assert response.json()["error"] == "Missing url query parameter"

    @pytest.mark.asyncio
    async def test_relative_url_rejected(self) -> None:
        response = await _gateway(_ok_json).handle(_request("not-a-url"))
        assert response.status == 400
        assert response.json()["error"] == "Invalid URL format"

    @pytest.mark.asyncio
    async def test_validation_runs_before_auth(self) -> None:
        resolver = FakeUserResolver()
        gateway = _gateway(_ok_json, resolver=resolver)
        response = await gateway.handle(_request(None, token=None))
        assert response.status == 400
        assert resolver.calls == 0


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_missing_bearer_is_401(self) -> None:
        response = await _gateway(_ok_json).handle(_request(token=None))
        assert response.status == 401
        assert response.json()["code"] == "auth_required"

    @pytest.mark.asyncio
    async def test_unknown_bearer_is_401(self) -> None:
        response = await _gateway(_ok_json).handle(_request(token="bad"))
        assert response.status == 401
        assert response.json() == {"error": "Invalid token", "code": "auth_invalid"}

    @pytest.mark.asyncio
    async def test_anonymous_mode_skips_auth(self) -> None:
        gateway = _gateway(_ok_json, policy=GatewayPolicy(require_auth=False))
        response = await gateway.handle(_request(token=None))
        assert response.status == 200

    def test_require_auth_needs_resolver(self) -> None:
        with pytest.raises(ValueError):
            ProxyGateway(
                policy=GatewayPolicy(require_auth=True),
                allowlist=TargetAllowlist(),
                rate_limiter=FixedWindowRateLimiter(),
                client=httpx.AsyncClient(transport=httpx.MockTransport(_ok_json)),
            )

    @pytest.mark.asyncio
    async def test_missing_resolver_at_request_time_is_500(self) -> None:
        gateway = _gateway(_ok_json)
        gateway._user_resolver = None

        response = await gateway.handle(_request())

        assert response.status == 500
        assert response.json()["code"] == "auth_not_configured"


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_limit_by_user(self, clock) -> None:
        limiter = FixedWindowRateLimiter(clock=clock)
        gateway = _gateway(
            _ok_json,
            policy=GatewayPolicy(max_requests=100, window_seconds=60),
            limiter=limiter,
        )

        statuses = [(await gateway.handle(_request())).status for _ in range(100)]
        denied = await gateway.handle(_request())

        assert statuses == [200] * 100
        assert denied.status == 429
        assert denied.json()["retryAfter"] == 60
        assert denied.json()["code"] == "rate_limited"

    @pytest.mark.asyncio
    async def test_users_do_not_share_quota(self, clock) -> None:
        resolver = FakeUserResolver({"t1": "user-1", "t2": "user-2"})
        gateway = _gateway(
            _ok_json,
            policy=GatewayPolicy(max_requests=1),
            resolver=resolver,
            limiter=FixedWindowRateLimiter(clock=clock),
        )

        assert (await gateway.handle(_request(token="t1"))).status == 200
        assert (await gateway.handle(_request(token="t1"))).status == 429
        assert (await gateway.handle(_request(token="t2"))).status == 200

    @pytest.mark.asyncio
    async def test_anonymous_limit_by_ip(self, clock) -> None:
        gateway = _gateway(
            _ok_json,
            policy=GatewayPolicy(require_auth=False, max_requests=1),
            limiter=FixedWindowRateLimiter(clock=clock),
        )

        assert (await gateway.handle(_request(client_ip="10.0.0.1"))).status == 200
        assert (await gateway.handle(_request(client_ip="10.0.0.1"))).status == 429
        assert (await gateway.handle(_request(client_ip="10.0.0.2"))).status == 200

    @pytest.mark.asyncio
    async def test_retry_after_and_reset_follow_injected_clock(self, clock) -> None:
        limiter = FixedWindowRateLimiter(clock=clock)
        gateway = _gateway(
            _ok_json,
            policy=GatewayPolicy(max_requests=1, window_seconds=60),
            limiter=limiter,
        )

        assert (await gateway.handle(_request())).status == 200
        clock.advance(45)
        denied = await gateway.handle(_request())
        clock.advance(16)
        after_window = await gateway.handle(_request())

        assert gateway.rate_limiter is limiter
        assert denied.json()["retryAfter"] == 15
        assert after_window.status == 200


class TestTargetPolicy:
    @pytest.mark.asyncio
    async def test_non_allowlisted_target_is_403(self) -> None:
        called = False

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal called
            called = True
            return httpx.Response(200)

        response = await _gateway(handler).handle(_request("http://evil.example/"))

        assert response.status == 403
        assert response.json()["error"] == "Target not allowed"
        assert called is False

    @pytest.mark.asyncio
    async def test_open_mode_forwards_anywhere(self) -> None:
        response = await _gateway(_ok_json, hosts=()).handle(_request("http://evil.example/"))
        assert response.status == 200


class TestForwarding:
    @pytest.mark.asyncio
    async def test_agp_header_policy(self) -> None:
        seen: dict[str, httpx.Request] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json={})

        await _gateway(handler).handle(
            _request(
                headers={
                    "Cookie": "sid=1",
                    "Origin": "https://app.example",
                    "Referer": "https://app.example/x",
                    "X-Target-Authorization": "Token upstream",
                    "Accept": "application/json",
                }
            )
        )

        upstream = seen["request"]
        assert upstream.headers["authorization"] == "Token upstream"
        assert "cookie" not in upstream.headers
        assert "origin" not in upstream.headers
        assert "referer" not in upstream.headers
        assert "x-target-authorization" not in upstream.headers
        assert upstream.headers["host"] == "api.example.com"
        assert upstream.headers["accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_caller_authorization_not_forwarded_on_agp(self) -> None:
        seen: dict[str, httpx.Request] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json={})

        await _gateway(handler).handle(_request())

        assert "authorization" not in seen["request"].headers

    @pytest.mark.asyncio
    async def test_dyn_policy_forwards_caller_authorization(self) -> None:
        seen: dict[str, httpx.Request] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json={})

        gateway = _gateway(
            handler,
            policy=GatewayPolicy(name="dyn", require_auth=False, forward_caller_authorization=True),
        )
        await gateway.handle(
            _request(token="third-party-key", headers={"Cookie": "sid=1"})
        )

        assert seen["request"].headers["authorization"] == "Bearer third-party-key"
        assert "cookie" not in seen["request"].headers

    @pytest.mark.asyncio
    async def test_dyn_policy_strips_hosted_auth_jwt(self) -> None:
        seen: dict[str, httpx.Request] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json={})

        claims = base64.urlsafe_b64encode(
            json.dumps({"iss": "https://abc.supabase.co/auth/v1"}).encode()
        ).rstrip(b"=").decode()
        gateway = _gateway(
            handler,
            policy=GatewayPolicy(name="dyn", require_auth=False, forward_caller_authorization=True),
        )
        await gateway.handle(_request(token=f"eyJhbGciOiJIUzI1NiJ9.{claims}.sig"))

        assert "authorization" not in seen["request"].headers

    @pytest.mark.asyncio
    async def test_json_object_body_is_encoded(self) -> None:
        seen: dict[str, httpx.Request] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(201, json={"created": True})

        response = await _gateway(handler).handle(
            _request(method="POST", body={"name": "item"})
        )

        assert response.status == 201
        assert seen["request"].headers["content-type"] == "application/json"
        assert json.loads(seen["request"].content) == {"name": "item"}

    @pytest.mark.asyncio
    async def test_raw_body_passes_through(self) -> None:
        seen: dict[str, httpx.Request] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(204)

        await _gateway(handler).handle(
            _request(
                method="PUT",
                body=b"a=1&b=2",
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        )

        assert seen["request"].content == b"a=1&b=2"
        assert seen["request"].headers["content-type"] == "application/x-www-form-urlencoded"

    @pytest.mark.asyncio
    async def test_chunked_inbound_body_is_reframed(self) -> None:
        seen: dict[str, httpx.Request] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(204)

        await _gateway(handler).handle(
            _request(
                method="POST",
                body=b"payload",
                headers={"Content-Type": "text/plain", "Transfer-Encoding": "chunked"},
            )
        )

        forwarded = seen["request"].headers
        assert "transfer-encoding" not in forwarded
        assert forwarded["content-length"] == "7"

    @pytest.mark.asyncio
    async def test_get_never_sends_body(self) -> None:
        seen: dict[str, httpx.Request] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json={})

        await _gateway(handler).handle(_request(body=b"ignored"))

        assert seen["request"].content == b""

    def test_prepare_body_keeps_caller_content_type(self) -> None:
        headers = {"content-type": "application/merge-patch+json"}
        body = prepare_body("PATCH", "application/merge-patch+json", {"a": 1}, headers)
        assert body == b'{"a": 1}'
        assert headers["content-type"] == "application/merge-patch+json"


class TestRelay:
    @pytest.mark.asyncio
    async def test_json_response_relayed_with_safe_headers(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                404,
                json={"detail": "missing"},
                headers={
                    "ETag": '"v1"',
                    "Cache-Control": "no-store",
                    "Set-Cookie": "tracking=1",
                    "X-Internal": "secret",
                },
            )

        response = await _gateway(handler).handle(_request())

        assert response.status == 404
        assert response.json() == {"detail": "missing"}
        assert response.header("etag") == '"v1"'
        assert response.header("cache-control") == "no-store"
        assert response.header("set-cookie") is None
        assert response.header("x-internal") is None
        assert response.stream is None

    @pytest.mark.asyncio
    async def test_set_cookie_relayed_when_allowed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={},
                headers=[("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")],
            )

        gateway = _gateway(handler, policy=GatewayPolicy(allow_set_cookie=True))
        response = await gateway.handle(_request())

        cookies = [value for name, value in response.headers if name == "set-cookie"]
        assert cookies == ["a=1", "b=2"]

    @pytest.mark.asyncio
    async def test_binary_response_is_streamed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, content=b"\x89PNG...bytes", headers={"Content-Type": "image/png"}
            )

        response = await _gateway(handler).handle(_request())

        assert response.status == 200
        assert response.stream is not None
        assert response.header("content-type") == "image/png"
        assert await _drain(response) == b"\x89PNG...bytes"


class TestUpstreamFailures:
    @pytest.mark.asyncio
    async def test_slow_upstream_times_out(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        gateway = _gateway(handler, policy=GatewayPolicy(timeout_seconds=0.05))
        response = await gateway.handle(_request())

        assert response.status == 504
        assert response.json()["error"] == "Request timeout"

    @pytest.mark.asyncio
    async def test_httpx_timeout_maps_to_504(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        response = await _gateway(handler).handle(_request())
        assert response.status == 504

    @pytest.mark.asyncio
    async def test_connection_error_is_502(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        response = await _gateway(handler).handle(_request())

        assert response.status == 502
        assert response.json() == {"error": "Upstream unreachable", "code": "upstream_unreachable"}

    @pytest.mark.asyncio
    async def test_upstream_is_not_retried(self) -> None:
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            raise httpx.ConnectError("refused", request=request)

        await _gateway(handler).handle(_request())
        assert attempts == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise RuntimeError("boom")

        response = await _gateway(handler).handle(_request())

        assert response.status == 500
        assert response.json() == {"error": "Internal Server Error"}
