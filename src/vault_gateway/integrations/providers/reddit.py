"""Reddit OAuth provider."""

from __future__ import annotations

from vault_gateway.integrations.providers.base import OAuthProvider, basic_auth_header


class RedditProvider(OAuthProvider):
    """Reddit authenticates the client with HTTP Basic, not form fields.

    Installed apps have no secret, so an empty one is sent.
    """

    name = "reddit"
    authorize_endpoint = "https://www.reddit.com/api/v1/authorize"
    token_endpoint = "https://www.reddit.com/api/v1/access_token"
    scopes = ("read", "mysubreddits", "history")
    extra_authorize_params = {"duration": "permanent"}
    requires_client_secret = False

    def _apply_client_auth(self, headers: dict[str, str], data: dict[str, str]) -> None:
        headers["Authorization"] = basic_auth_header(
            self.config.client_id or "", self.config.client_secret or ""
        )
