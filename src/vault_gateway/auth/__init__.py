"""Caller authentication.

The gateway only needs ``UserResolver.require_user``; the Supabase
implementation is the production collaborator.
"""

from vault_gateway.auth.context import AuthenticatedUser
from vault_gateway.auth.supabase import SupabaseUserResolver, UserResolver, extract_bearer_token

__all__ = [
    "AuthenticatedUser",
    "SupabaseUserResolver",
    "UserResolver",
    "extract_bearer_token",
]
