"""OAuth provider variants, one class per external identity provider."""

from vault_gateway.integrations.providers.base import OAuthProvider, OAuthTokens, ProviderConfig
from vault_gateway.integrations.providers.google import GoogleProvider
from vault_gateway.integrations.providers.microsoft import MicrosoftProvider
from vault_gateway.integrations.providers.reddit import RedditProvider
from vault_gateway.integrations.providers.spotify import SpotifyProvider
from vault_gateway.integrations.providers.youtube_music import YouTubeMusicProvider

PROVIDER_CLASSES: tuple[type[OAuthProvider], ...] = (
    RedditProvider,
    GoogleProvider,
    MicrosoftProvider,
    SpotifyProvider,
    YouTubeMusicProvider,
)

__all__ = [
    "PROVIDER_CLASSES",
    "GoogleProvider",
    "MicrosoftProvider",
    "OAuthProvider",
    "OAuthTokens",
    "ProviderConfig",
    "RedditProvider",
    "SpotifyProvider",
    "YouTubeMusicProvider",
]
