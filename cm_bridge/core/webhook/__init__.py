"""
Webhook Server Package

This package provides the alarm dispatcher and the FastAPI application that
exposes it over HTTP.
"""

from .app import build_handler, create_app_from_config, create_webhook_app
from .formatters import format_event_message, format_threshold_message
from .handlers import Outcome, WebhookHandler

__all__ = [
    "Outcome",
    "WebhookHandler",
    "build_handler",
    "create_app_from_config",
    "create_webhook_app",
    "format_event_message",
    "format_threshold_message",
]
