"""Authenticated caller identity."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class AuthenticatedUser:
    """
    Immutable identity returned by the authentication collaborator.

    SECURITY: the bearer token itself is never stored here.
    """

    id: str
    email: str | None = None
    raw: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        object.__setattr__(self, "raw", MappingProxyType(dict(self.raw)))

    def __repr__(self) -> str:
        return f"AuthenticatedUser(id={self.id!r})"
