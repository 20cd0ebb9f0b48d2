"""Configuration management for the outbound gateway."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from vault_gateway.utils.http import normalize_base_url

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8787, ge=1, le=65535)
    allowed_origins: tuple[str, ...] = Field(default=())
    trust_forwarded_headers: bool = Field(default=False)
    max_body_size_mb: int = Field(default=10, ge=1)


class GatewaySettings(BaseModel):
    """Settings for the ``/agp`` and ``/dyn`` forwarding endpoints.

    An empty ``allowed_target_hosts`` puts the gateway in open mode: every
    http(s) target is accepted. Only use that for local development.
    """

    allowed_target_hosts: tuple[str, ...] = Field(default=())
    require_auth: bool = Field(
        default=True,
        description="If False, /agp skips the bearer-token check (anonymous mode).",
    )
    rate_limit_max_requests: int = Field(default=50, ge=1)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0, le=600)
    allow_set_cookie: bool = Field(default=False)
    dyn_enabled: bool = Field(default=False)


class ProviderSettings(BaseModel):
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None


class OAuthSettings(BaseModel):
    redirect_base_url: str = Field(default="http://localhost:8080")
    redirect_path: str = Field(default="/feeds")
    state_ttl_seconds: int = Field(default=300, ge=1, le=3600)
    handoff_ttl_seconds: int = Field(default=300, ge=1, le=3600)
    token_timeout_seconds: float | None = Field(
        default=None,
        description="Timeout for provider token calls. None means no timeout.",
    )
    providers: dict[str, ProviderSettings] = Field(default_factory=dict)

    @field_validator("redirect_base_url")
    @classmethod
    def _validate_redirect_base_url(cls, value: str) -> str:
        return normalize_base_url(value)

    @field_validator("redirect_path")
    @classmethod
    def _validate_redirect_path(cls, value: str) -> str:
        value = value.strip()
        if value and not value.startswith("/"):
            raise ValueError("redirect_path must start with '/'")
        return value

    @property
    def frontend_redirect_url(self) -> str:
        return f"{self.redirect_base_url}{self.redirect_path}"


class AuthSettings(BaseModel):
    supabase_url: str | None = None
    supabase_anon_key: str | None = None


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)


# Provider name -> environment variable prefix.
PROVIDER_ENV_PREFIXES = {
    "reddit": "REDDIT",
    "google": "GOOGLE",
    "microsoft": "MS",
    "spotify": "SPOTIFY",
    "youtubemusic": "YOUTUBEMUSIC",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float | None) -> float | None:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def _env_optional(key: str) -> str | None:
    value = os.getenv(key)
    if value is None:
        return None
    return value.strip() or None


def _provider_settings_from_env() -> dict[str, dict[str, str | None]]:
    return {
        name: {
            "client_id": _env_optional(f"{prefix}_CLIENT_ID"),
            "client_secret": _env_optional(f"{prefix}_CLIENT_SECRET"),
            "redirect_uri": _env_optional(f"{prefix}_REDIRECT_URI"),
        }
        for name, prefix in PROVIDER_ENV_PREFIXES.items()
    }


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")

    settings_data: dict[str, object] = {
        "server": {
            "host": os.getenv("HOST", ServerSettings().host),
            "port": _env_int("PORT", ServerSettings().port),
            "allowed_origins": tuple(_split_csv(os.getenv("ALLOWED_ORIGINS"))),
            "trust_forwarded_headers": _env_bool(
                "HTTP_TRUST_FORWARDED_HEADERS", ServerSettings().trust_forwarded_headers
            ),
            "max_body_size_mb": _env_int("MAX_BODY_SIZE_MB", ServerSettings().max_body_size_mb),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", LoggingSettings().level),
            "file": _env_optional("LOG_FILE"),
        },
        "gateway": {
            "allowed_target_hosts": tuple(_split_csv(os.getenv("ALLOWED_TARGET_HOSTS"))),
            "require_auth": _env_bool("AGP_REQUIRE_AUTH", GatewaySettings().require_auth),
            "rate_limit_max_requests": _env_int(
                "AGP_RATE_LIMIT_MAX_REQUESTS", GatewaySettings().rate_limit_max_requests
            ),
            "rate_limit_window_seconds": _env_float(
                "AGP_RATE_LIMIT_WINDOW_SECONDS", GatewaySettings().rate_limit_window_seconds
            ),
            "timeout_seconds": _env_float("AGP_TIMEOUT_SECONDS", GatewaySettings().timeout_seconds),
            "allow_set_cookie": _env_bool(
                "AGP_ALLOW_SET_COOKIE", GatewaySettings().allow_set_cookie
            ),
            "dyn_enabled": _env_bool("DYN_PROXY_ENABLED", GatewaySettings().dyn_enabled),
        },
        "oauth": {
            "redirect_base_url": os.getenv(
                "OAUTH_REDIRECT_BASE_URL", OAuthSettings().redirect_base_url
            ),
            "redirect_path": os.getenv("OAUTH_REDIRECT_PATH", OAuthSettings().redirect_path),
            "state_ttl_seconds": _env_int(
                "OAUTH_STATE_TTL_SECONDS", OAuthSettings().state_ttl_seconds
            ),
            "handoff_ttl_seconds": _env_int(
                "OAUTH_HANDOFF_TTL_SECONDS", OAuthSettings().handoff_ttl_seconds
            ),
            "token_timeout_seconds": _env_float("OAUTH_TOKEN_TIMEOUT_SECONDS", None),
            "providers": _provider_settings_from_env(),
        },
        "auth": {
            "supabase_url": _env_optional("SUPABASE_URL"),
            "supabase_anon_key": _env_optional("SUPABASE_ANON_KEY"),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    return settings
