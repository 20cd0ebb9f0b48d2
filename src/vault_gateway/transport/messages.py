"""Framework-neutral request and response types.

The gateway and broker cores work only with these; the Starlette adapter in
``transport.http_server`` converts at the edge.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from vault_gateway.auth.context import AuthenticatedUser
from vault_gateway.errors import to_http_error


class Headers(Mapping[str, str]):
    """Case-insensitive, multi-value header view.

    ``headers["X"]`` returns the first value; ``get_list`` returns all of them.
    Iteration yields each lowercased name once, in first-seen order.
    """

    def __init__(self, items: list[tuple[str, str]] | Mapping[str, str] | None = None) -> None:
        if items is None:
            pairs: list[tuple[str, str]] = []
        elif isinstance(items, Mapping):
            pairs = list(items.items())
        else:
            pairs = list(items)
        self._items = [(name.lower(), value) for name, value in pairs]

    def __getitem__(self, key: str) -> str:
        lowered = key.lower()
        for name, value in self._items:
            if name == lowered:
                return value
        raise KeyError(key)

    def __iter__(self):
        seen: set[str] = set()
        for name, _ in self._items:
            if name not in seen:
                seen.add(name)
                yield name

    def __len__(self) -> int:
        return len({name for name, _ in self._items})

    def get_list(self, key: str) -> list[str]:
        lowered = key.lower()
        return [value for name, value in self._items if name == lowered]

    def multi_items(self) -> list[tuple[str, str]]:
        return list(self._items)

    def __repr__(self) -> str:
        names = ", ".join(self)
        return f"Headers([{names}])"


@dataclass
class InboundRequest:
    """An inbound HTTP request as seen by the gateway core.

    ``body`` is raw bytes from the wire, or an already-decoded JSON object
    (dict/list) when the caller built the request programmatically.
    """

    method: str
    path: str = "/"
    headers: Headers = field(default_factory=Headers)
    query: Mapping[str, str] = field(default_factory=dict)
    path_params: Mapping[str, str] = field(default_factory=dict)
    body: bytes | str | dict[str, Any] | list[Any] | None = None
    client_ip: str = "unknown"
    user: AuthenticatedUser | None = None

    def json(self) -> Any:
        """Decode the body as JSON; returns None for an empty or undecodable body."""
        if self.body is None:
            return None
        if isinstance(self.body, (dict, list)):
            return self.body
        raw = self.body.encode("utf-8") if isinstance(self.body, str) else self.body
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None


@dataclass
class OutboundResponse:
    """A response produced by the gateway core.

    Exactly one of ``body`` or ``stream`` is used. ``on_close`` releases
    upstream resources once a stream has been fully sent or abandoned.
    """

    status: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    stream: AsyncIterator[bytes] | None = None
    on_close: Callable[[], Awaitable[None]] | None = None

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def json(self) -> Any:
        return json.loads(self.body)


def json_response(content: Any, status: int = 200) -> OutboundResponse:
    return OutboundResponse(
        status=status,
        headers=[("content-type", "application/json")],
        body=json.dumps(content, separators=(",", ":")).encode("utf-8"),
    )


def redirect_response(location: str, status: int = 302) -> OutboundResponse:
    return OutboundResponse(status=status, headers=[("location", location)])


def error_response(exc: BaseException) -> OutboundResponse:
    status, body = to_http_error(exc)
    return json_response(body, status=status)
