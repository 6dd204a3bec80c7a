"""
cm-bridge: CloudMonitor alarm relay for Telegram.

This package provides a production-ready Python application that receives
CloudMonitor threshold and event alarm webhooks, validates and rate-limits
them, and forwards a formatted message to a Telegram chat.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
