"""Application entry point for the classroom service."""

from __future__ import annotations

import socket
import sys

from classroom_app.constants.about import APP_NAME, APP_VERSION
from classroom_app.core.classroom_manager import ClassroomManager
from classroom_app.core.settings import AppSettings, SettingsError
from classroom_app.server.api_server import run_api_server
from classroom_app.utils.logging_config import configure_logging


def _determine_public_url(port: int) -> str:
    """Best-effort determination of the local IP for the URL shown in the log."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}/"


def main() -> None:
    """Load settings, seed the identity provider, and serve the API."""
    try:
        settings = AppSettings.from_environment()
    except SettingsError as exc:
        configure_logging().error("Invalid settings: %s", exc)
        sys.exit(2)

    logger = configure_logging(settings.log_level)
    logger.info("Starting %s %s", APP_NAME, APP_VERSION)

    manager = ClassroomManager.from_settings(settings)
    logger.info("Classroom API available at %s", _determine_public_url(settings.port))
    run_api_server(manager, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
