"""Third-party OAuth integrations: providers, registry, handoff store and broker."""

from vault_gateway.integrations.broker import OAuthBroker
from vault_gateway.integrations.handoff import HandoffStore
from vault_gateway.integrations.registry import ProviderRegistry

__all__ = ["HandoffStore", "OAuthBroker", "ProviderRegistry"]
