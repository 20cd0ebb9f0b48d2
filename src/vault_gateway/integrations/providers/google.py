"""Google OAuth provider (Gmail read-only)."""

from __future__ import annotations

from vault_gateway.integrations.providers.base import OAuthProvider

GOOGLE_AUTHORIZE_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"

# Offline access plus forced consent so Google always returns a refresh token.
GOOGLE_AUTHORIZE_PARAMS = {
    "access_type": "offline",
    "include_granted_scopes": "true",
    "prompt": "consent",
}


class GoogleProvider(OAuthProvider):
    name = "google"
    authorize_endpoint = GOOGLE_AUTHORIZE_ENDPOINT
    token_endpoint = GOOGLE_TOKEN_ENDPOINT
    scopes = (
        "https://www.googleapis.com/auth/gmail.readonly",
        "openid",
        "email",
        "profile",
    )
    extra_authorize_params = GOOGLE_AUTHORIZE_PARAMS
