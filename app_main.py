"""Application entry point for the ClassQuiz service."""

from __future__ import annotations

import socket
import sys

from classquiz.constants.about import APP_NAME, APP_VERSION
from classquiz.core.classroom_manager import build_manager
from classquiz.server.api_server import run_api_server
from classquiz.utils.logging_config import configure_logging
from classquiz.utils.settings import ConfigurationError, load_settings


def _determine_public_url(port: int) -> str:
    """Best-effort determination of the local IP for the URL shown to teachers."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}/"


def main() -> None:
    """Load settings, initialize logging and serve the API until interrupted."""
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        sys.exit(f"Invalid configuration: {exc}")

    logger = configure_logging(settings.log_level)
    logger.info("Starting %s %s (backend=%s, dev_mode=%s)", APP_NAME, APP_VERSION, settings.backend, settings.dev_mode)

    manager = build_manager(settings)
    logger.info("API available at %s", _determine_public_url(settings.port))
    run_api_server(manager, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
