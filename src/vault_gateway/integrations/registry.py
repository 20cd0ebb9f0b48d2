"""Name -> provider map built once at startup."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import httpx

from vault_gateway.errors import UnsupportedProviderError
from vault_gateway.integrations.providers import PROVIDER_CLASSES, OAuthProvider, ProviderConfig
from vault_gateway.integrations.providers.base import USE_CLIENT_TIMEOUT


class ProviderRegistry:
    def __init__(self, providers: Iterable[OAuthProvider]) -> None:
        self._providers: dict[str, OAuthProvider] = {}
        for provider in providers:
            if provider.name in self._providers:
                raise ValueError(f"Duplicate OAuth provider: {provider.name}")
            self._providers[provider.name] = provider

    @classmethod
    def from_config(
        cls,
        configs: Mapping[str, ProviderConfig],
        client: httpx.AsyncClient,
        timeout: float | None = USE_CLIENT_TIMEOUT,
    ) -> "ProviderRegistry":
        """Instantiate every known provider; missing config means unconfigured."""
        return cls(
            provider_cls(configs.get(provider_cls.name) or ProviderConfig(), client, timeout)
            for provider_cls in PROVIDER_CLASSES
        )

    def get(self, name: str) -> OAuthProvider | None:
        return self._providers.get(name)

    def require(self, name: str) -> OAuthProvider:
        provider = self._providers.get(name)
        if provider is None:
            raise UnsupportedProviderError(name)
        return provider

    def list(self) -> list[dict[str, object]]:
        return [
            {"name": provider.name, "configured": provider.is_configured()}
            for provider in self._providers.values()
        ]

    def names(self) -> list[str]:
        return list(self._providers)
