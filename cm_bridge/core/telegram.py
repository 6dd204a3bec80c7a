"""
Telegram API client for cm-bridge.

This module provides the outbound side of the relay: a small synchronous
Telegram Bot API client built on httpx. The webhook handler only depends on
the ``MessageSender`` protocol, ``send(chat_id, text) -> bool``; every
failure (bad input, timeout, network or API error) is logged and reported
as ``False``.
"""

import re
from typing import Any, Protocol

import httpx

from cm_bridge.constants import (
    TELEGRAM_API_BASE_URL,
    TELEGRAM_API_TIMEOUT,
    TELEGRAM_DEFAULT_PARSE_MODE,
    TELEGRAM_MAX_MESSAGE_LENGTH,
    TELEGRAM_USER_AGENT,
)
from cm_bridge.exceptions import TelegramAPIError, TelegramError, TelegramTimeoutError
from cm_bridge.logging import get_logger
from cm_bridge.models.config import TELEGRAM_API_KEY_PATTERN, TELEGRAM_CHAT_ID_PATTERN

logger = get_logger(__name__)

PARSE_MODES = ("Markdown", "MarkdownV2", "HTML", "")

# Control characters except tab, newline and carriage return
_MESSAGE_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

__all__ = ["MessageSender", "TelegramClient"]


class MessageSender(Protocol):
    """Anything that can deliver a text message to a chat."""

    def send(self, chat_id: str, text: str) -> bool: ...


class TelegramClient:
    """
    Telegram Bot API client using httpx.

    Uses one persistent ``httpx.Client`` for connection pooling. Every
    request is bounded by ``timeout`` seconds; a timeout counts as a failed
    send.
    """

    def __init__(
        self,
        bot_token: str,
        timeout: float = TELEGRAM_API_TIMEOUT,
        parse_mode: str = TELEGRAM_DEFAULT_PARSE_MODE,
        http_client: httpx.Client | None = None,
    ):
        """
        Initialize Telegram client.

        Args:
            bot_token: Telegram bot token from BotFather
            timeout: Total timeout per API call (seconds)
            parse_mode: Parse mode for outgoing messages
            http_client: Pre-built client (tests inject a mock transport)

        Raises:
            ValueError: If the token or parse mode is malformed
        """
        if not bot_token:
            raise ValueError("API key cannot be empty")
        if not TELEGRAM_API_KEY_PATTERN.match(bot_token):
            raise ValueError("Invalid Telegram Bot API key format")
        if parse_mode not in PARSE_MODES:
            raise ValueError(f"Invalid parse mode. Allowed: {', '.join(m for m in PARSE_MODES if m)}")

        self.base_url = f"{TELEGRAM_API_BASE_URL}{bot_token}"
        self.parse_mode = parse_mode
        self._timeout = httpx.Timeout(timeout)
        self._client = http_client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self._timeout,
                verify=True,
                headers={"User-Agent": TELEGRAM_USER_AGENT},
            )
            logger.debug("Created httpx client for Telegram", timeout=self._timeout.read)
        return self._client

    def close(self) -> None:
        """Close the httpx client and release its connections."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "TelegramClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    def _post(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Call a Bot API method.

        Raises:
            TelegramTimeoutError: If the request times out
            TelegramAPIError: On transport errors, non-2xx or ``ok: false``
        """
        url = f"{self.base_url}/{method}"
        try:
            response = self._get_client().post(
                url,
                json=payload,
                headers={"User-Agent": TELEGRAM_USER_AGENT},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise TelegramTimeoutError(
                f"Telegram API request timed out after {self._timeout.read}s"
            ) from e
        except httpx.HTTPStatusError as e:
            raise TelegramAPIError(
                f"Telegram API returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise TelegramAPIError(f"Telegram request failed: {e}") from e
        except ValueError as e:
            raise TelegramAPIError("Telegram API returned invalid JSON", status_code=response.status_code) from e

        if not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else None
            raise TelegramAPIError(
                f"Telegram API error: {description or 'unknown error'}",
                status_code=response.status_code,
            )
        return data

    def send_message(self, chat_id: str, text: str, silent: bool = False) -> bool:
        """
        Send a message to a Telegram chat.

        Args:
            chat_id: Numeric chat id or @channelusername
            text: Message text
            silent: Deliver without a notification sound

        Returns:
            True if Telegram accepted the message
        """
        chat_id = str(chat_id)
        if not TELEGRAM_CHAT_ID_PATTERN.match(chat_id):
            logger.error("Invalid chat ID format", chat_id=chat_id)
            return False

        text = _MESSAGE_CONTROL_CHARS.sub("", text or "").strip()
        if not text:
            logger.error("Refusing to send empty message", chat_id=chat_id)
            return False
        if len(text) > TELEGRAM_MAX_MESSAGE_LENGTH:
            logger.error(
                "Message too long",
                chat_id=chat_id,
                length=len(text),
                limit=TELEGRAM_MAX_MESSAGE_LENGTH,
            )
            return False

        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_notification": silent,
        }
        if self.parse_mode:
            payload["parse_mode"] = self.parse_mode

        try:
            self._post("sendMessage", payload)
        except TelegramTimeoutError as e:
            logger.error("Telegram API timeout", chat_id=chat_id, error=str(e))
            return False
        except TelegramError as e:
            logger.error(
                "HTTP request failed",
                chat_id=chat_id,
                error=str(e),
                status_code=getattr(e, "status_code", None),
            )
            return False

        logger.info("Message sent successfully", chat_id=chat_id, message_length=len(text))
        return True

    def send(self, chat_id: str, text: str) -> bool:
        """``MessageSender`` entry point."""
        return self.send_message(chat_id, text)
