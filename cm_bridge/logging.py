"""
Structured logging configuration for cm-bridge.

All components log through structlog loggers obtained from ``get_logger``.
Events are routed through the standard library so that the rotating file
handler and pytest's caplog both see them. Calls take the shape
``logger.warning("Rate limit exceeded", client_ip=ip, remaining=0)``.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

import structlog

# Log levels accepted by setup_logging
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_logging_configured = False


def reset_logging() -> None:
    """
    Reset logging configuration.

    Removes handlers installed by ``setup_logging`` so that tests can
    configure logging again with different options.
    """
    global _logging_configured  # noqa: PLW0603
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "_cm_bridge", False):
            root_logger.removeHandler(handler)
            handler.close()
    structlog.reset_defaults()
    _logging_configured = False


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=False,
            exception_formatter=structlog.dev.plain_traceback,
        )
    return structlog.stdlib.ProcessorFormatter(processor=renderer)


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | None = None,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configure structured logging for cm-bridge.

    Idempotent: calls after the first one are ignored until
    ``reset_logging`` is called.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ("json" or "text")
        log_file: Path to a log file; rotated by size when given
        max_bytes: Maximum size of log file before rotation
        backup_count: Number of rotated files to keep
    """
    global _logging_configured  # noqa: PLW0603

    if _logging_configured:
        return

    level = level.upper()
    log_level = getattr(logging, level) if level in LOG_LEVELS else logging.INFO

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = _build_formatter(log_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler._cm_bridge = True  # type: ignore[attr-defined]
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        file_handler._cm_bridge = True  # type: ignore[attr-defined]
        root_logger.addHandler(file_handler)

    # uvicorn access lines duplicate our own request logging
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _logging_configured = True


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Lazy structlog logger; it picks up the configuration in effect at
        first use, so module-level loggers created before ``setup_logging``
        still route through it.
    """
    return structlog.get_logger(name)
