"""Log-safe views of OAuth token endpoint payloads."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

# Standard OAuth error fields; any other field may carry a credential.
TOKEN_ERROR_FIELDS = ("error", "error_description", "error_uri")

_MAX_FIELD_LENGTH = 200


def token_error_summary(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Keep the string error fields of a rejected token response.

    Everything else is dropped and only counted under ``omitted``.
    """
    summary: dict[str, Any] = {}
    for field in TOKEN_ERROR_FIELDS:
        value = payload.get(field)
        if isinstance(value, str):
            summary[field] = value[:_MAX_FIELD_LENGTH]
    omitted = sum(1 for key in payload if key not in summary)
    if omitted:
        summary["omitted"] = omitted
    return summary
