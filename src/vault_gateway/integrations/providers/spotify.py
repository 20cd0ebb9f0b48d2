"""Spotify OAuth provider."""

from __future__ import annotations

from vault_gateway.integrations.providers.base import OAuthProvider


class SpotifyProvider(OAuthProvider):
    name = "spotify"
    authorize_endpoint = "https://accounts.spotify.com/authorize"
    token_endpoint = "https://accounts.spotify.com/api/token"
    scopes = ("user-read-recently-played", "user-top-read")
