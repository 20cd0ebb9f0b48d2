"""Logging helpers for the gateway server."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from vault_gateway.config import load_settings

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure process-wide logging from settings."""
    settings = load_settings()
    level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    handlers.append(stream_handler)

    file_error: OSError | None = None
    if settings.logging.file:
        try:
            Path(settings.logging.file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(settings.logging.file)
            file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
            handlers.append(file_handler)
        except OSError as exc:
            file_error = exc

    logging.basicConfig(level=level, handlers=handlers, force=True)
    # httpx logs full request URLs at INFO; target query strings may carry secrets.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    if file_error is not None:
        _logger.warning("Failed to open log file %s: %s", settings.logging.file, file_error)
