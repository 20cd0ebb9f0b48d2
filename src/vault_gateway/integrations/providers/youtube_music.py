"""YouTube Music provider: Google OAuth with the YouTube read-only scope."""

from __future__ import annotations

from vault_gateway.integrations.providers.base import OAuthProvider
from vault_gateway.integrations.providers.google import (
    GOOGLE_AUTHORIZE_ENDPOINT,
    GOOGLE_AUTHORIZE_PARAMS,
    GOOGLE_TOKEN_ENDPOINT,
)


class YouTubeMusicProvider(OAuthProvider):
    name = "youtubemusic"
    authorize_endpoint = GOOGLE_AUTHORIZE_ENDPOINT
    token_endpoint = GOOGLE_TOKEN_ENDPOINT
    scopes = (
        "https://www.googleapis.com/auth/youtube.readonly",
        "openid",
        "email",
        "profile",
    )
    extra_authorize_params = GOOGLE_AUTHORIZE_PARAMS
