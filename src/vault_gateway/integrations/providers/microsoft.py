"""Microsoft identity platform provider (Outlook mail read)."""

from __future__ import annotations

from vault_gateway.integrations.providers.base import OAuthProvider


class MicrosoftProvider(OAuthProvider):
    name = "microsoft"
    authorize_endpoint = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
    token_endpoint = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
    scopes = (
        "offline_access",
        "openid",
        "profile",
        "https://graph.microsoft.com/Mail.Read",
    )
    extra_authorize_params = {"response_mode": "query"}

    def _extend_token_request(self, data: dict[str, str]) -> None:
        # The v2.0 token endpoint expects the scope to be repeated.
        data["scope"] = self.scope
