"""
Server command implementation.

Starts uvicorn with the webhook application. Settings are validated before
the server starts so that a misconfigured deployment fails immediately.
"""

import uvicorn

from cm_bridge.config import get_config
from cm_bridge.constants import EXIT_ERROR, EXIT_SUCCESS
from cm_bridge.core.rate_limiter import FileRateLimitStore
from cm_bridge.exceptions import ConfigurationError, RateLimitStorageError
from cm_bridge.logging import get_logger

logger = get_logger(__name__)

APP_FACTORY = "cm_bridge.core.webhook.app:create_app_from_config"


def start_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = False) -> None:
    """
    Start the uvicorn server.

    Args:
        host: Server host address
        port: Server port
        reload: Enable auto-reload for development
    """
    uvicorn.run(APP_FACTORY, factory=True, host=host, port=port, reload=reload)


def main(host: str | None = None, port: int | None = None, reload: bool = False) -> int:
    """
    Main entry point for server command.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    config = get_config()
    try:
        settings = config.to_settings()
        FileRateLimitStore(settings.rate_limit_storage_dir)
    except ConfigurationError as e:
        for problem in e.problems:
            print(f"Configuration error: {problem}")
        return EXIT_ERROR
    except RateLimitStorageError as e:
        print(f"Storage error: {e}")
        return EXIT_ERROR

    host = host or config.get("server.host", "0.0.0.0")
    port = port or config.get("server.port", 8080)
    logger.info("Launching uvicorn", host=host, port=port)
    start_server(host=host, port=port, reload=reload)
    return EXIT_SUCCESS
