"""Entrypoint for the vault gateway HTTP server."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

if __package__ in (None, ""):
    sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # pragma: no cover

from vault_gateway import __version__
from vault_gateway.config import load_settings
from vault_gateway.logging_utils import configure_logging


def run_entrypoint() -> None:
    """Configure logging and serve the Starlette app with uvicorn."""
    settings = load_settings()
    configure_logging()
    from vault_gateway.transport.http_server import create_http_app

    try:
        import uvicorn
    except ImportError as exc:
        raise RuntimeError("uvicorn is required to run the gateway server") from exc

    logging.getLogger(__name__).info(
        "Starting vault gateway v%s on %s:%s",
        __version__,
        settings.server.host,
        settings.server.port,
    )
    app = create_http_app(settings)
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        ws="none",
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    run_entrypoint()
