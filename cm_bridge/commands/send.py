"""
Send command implementation.

Sends a one-off message to the configured chat, which is the quickest way
to check the bot token and chat id after deployment.
"""

from cm_bridge.config import get_config
from cm_bridge.constants import EXIT_ERROR, EXIT_SUCCESS
from cm_bridge.core.telegram import TelegramClient
from cm_bridge.exceptions import ConfigurationError


def main(text: str, silent: bool = False) -> int:
    """
    Main entry point for send command.

    Args:
        text: Message text (Markdown)
        silent: Send without notification

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        settings = get_config().to_settings()
    except ConfigurationError as e:
        for problem in e.problems:
            print(f"Configuration error: {problem}")
        return EXIT_ERROR

    with TelegramClient(settings.telegram_api_key) as client:
        ok = client.send_message(settings.telegram_chat_id, f"{settings.prefix}{text}", silent=silent)

    if not ok:
        print("Failed to send message (see log for details)")
        return EXIT_ERROR
    print("Message sent")
    return EXIT_SUCCESS
