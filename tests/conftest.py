from __future__ import annotations

import pytest

from vault_gateway.auth.context import AuthenticatedUser
from vault_gateway.auth.supabase import extract_bearer_token
from vault_gateway.config import _load_settings_cached
from vault_gateway.errors import AuthInvalidError
from vault_gateway.transport.messages import InboundRequest


class FakeUserResolver:
    """Maps bearer tokens to users; anything else is rejected."""

    def __init__(self, users: dict[str, str] | None = None) -> None:
        self.users = users if users is not None else {"good-token": "user-1"}
        self.calls = 0

    async def require_user(self, request: InboundRequest) -> AuthenticatedUser:
        self.calls += 1
        token = extract_bearer_token(request)
        user_id = self.users.get(token)
        if user_id is None:
            raise AuthInvalidError("Invalid token")
        return AuthenticatedUser(id=user_id, email=f"{user_id}@example.com")


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def user_resolver() -> FakeUserResolver:
    return FakeUserResolver()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    _load_settings_cached.cache_clear()
    yield
    _load_settings_cached.cache_clear()
