"""
Webhook dispatcher for CloudMonitor alarms.

``WebhookHandler.handle`` takes a transport-neutral ``IncomingRequest`` and
always returns a ``WebhookResponse``. The pipeline is:

1. security gate: method, rate limit, optional shared-secret signature
2. content-type dispatch: form body -> threshold alarm, JSON -> event alarm
3. sanitize, validate, format
4. send to the configured Telegram chat

Expected failures end the pipeline with an ``Outcome``; detailed reasons go
to the log and the caller only sees a generic error body.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl

from cm_bridge.core.validation import (
    sanitize_data,
    validate_content_type,
    validate_event_alarm,
    validate_http_method,
    validate_signature,
    validate_threshold_alarm,
)
from cm_bridge.logging import get_logger
from cm_bridge.models.webhook import IncomingRequest, WebhookResponse

from .formatters import format_event_message, format_threshold_message

if TYPE_CHECKING:
    from cm_bridge.core.rate_limiter import RateLimiter
    from cm_bridge.core.telegram import MessageSender
    from cm_bridge.models.config import RelaySettings

logger = get_logger(__name__)

__all__ = ["Outcome", "WebhookHandler"]

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"


class Outcome(str, Enum):
    """Terminal state of one webhook request."""

    SUCCESS = "success"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    RATE_LIMITED = "rate_limited"
    FORBIDDEN = "forbidden"
    UNSUPPORTED_CONTENT_TYPE = "unsupported_content_type"
    PARSE_ERROR = "parse_error"
    PROCESSING_FAILED = "processing_failed"
    SEND_FAILED = "send_failed"
    INTERNAL_ERROR = "internal_error"

    @property
    def status_code(self) -> int:
        return _OUTCOME_STATUS[self]

    @property
    def message(self) -> str:
        return _OUTCOME_MESSAGES[self]


_OUTCOME_STATUS = {
    Outcome.SUCCESS: 200,
    Outcome.METHOD_NOT_ALLOWED: 405,
    Outcome.RATE_LIMITED: 429,
    Outcome.FORBIDDEN: 403,
    Outcome.UNSUPPORTED_CONTENT_TYPE: 400,
    Outcome.PARSE_ERROR: 400,
    Outcome.PROCESSING_FAILED: 400,
    # Delivery failures are reported as 400, not 500
    Outcome.SEND_FAILED: 400,
    Outcome.INTERNAL_ERROR: 500,
}

_OUTCOME_MESSAGES = {
    Outcome.SUCCESS: "OK",
    Outcome.METHOD_NOT_ALLOWED: "Method not allowed",
    Outcome.RATE_LIMITED: "Rate limit exceeded",
    Outcome.FORBIDDEN: "Security check failed",
    Outcome.UNSUPPORTED_CONTENT_TYPE: "Unsupported content type",
    Outcome.PARSE_ERROR: "Invalid JSON",
    Outcome.PROCESSING_FAILED: "Processing failed",
    Outcome.SEND_FAILED: "Processing failed",
    Outcome.INTERNAL_ERROR: "Internal server error",
}


def _iso_timestamp() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


class WebhookHandler:
    """
    Validate, rate-limit and relay one alarm webhook per call.

    The handler keeps no per-request state; all collaborators are injected.
    """

    ALLOWED_METHODS = ("POST",)

    def __init__(
        self,
        settings: RelaySettings,
        rate_limiter: RateLimiter,
        sender: MessageSender,
        log: Any = None,
    ) -> None:
        """
        Initialize webhook handler.

        Args:
            settings: Immutable runtime settings (chat id, prefix, signature)
            rate_limiter: Per-client sliding-window limiter
            sender: Delivers formatted text to the chat
            log: structlog-style logger; defaults to this module's logger
        """
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.sender = sender
        self.log = log if log is not None else logger

    def handle(self, request: IncomingRequest) -> WebhookResponse:
        """
        Run the full pipeline for one request.

        Never raises: unexpected exceptions become a 500 response.
        """
        log = self.log.bind(
            request_id=uuid.uuid4().hex[:8],
            client_ip=request.client_identifier,
        )

        try:
            log.info(
                "Webhook request received",
                method=request.method,
                content_length=len(request.body.encode("utf-8")),
            )

            rejection = self._security_gate(request, log)
            if rejection is not None:
                return rejection

            outcome, detail = self._process(request, log)
            if outcome is Outcome.SUCCESS:
                log.info("Webhook processed successfully", message_sent=True)
                return self._success_response()
            return self._error_response(outcome, detail)

        except Exception as e:
            log.error("Webhook handler exception", error=str(e), exc_info=True)
            return self._error_response(Outcome.INTERNAL_ERROR)

    def _security_gate(self, request: IncomingRequest, log: Any) -> WebhookResponse | None:
        """Return a rejection response, or None if every check passed."""
        if not validate_http_method(request.method, self.ALLOWED_METHODS):
            log.warning("Invalid HTTP method", method=request.method)
            return self._error_response(Outcome.METHOD_NOT_ALLOWED)

        client = request.client_identifier
        if not self.rate_limiter.is_allowed(client):
            retry_after = self.rate_limiter.get_time_until_reset(client)
            remaining = self.rate_limiter.get_remaining_requests(client)
            log.warning("Rate limit exceeded", remaining=remaining, retry_after=retry_after)
            response = self._error_response(Outcome.RATE_LIMITED)
            response.headers["Retry-After"] = str(retry_after)
            response.headers["X-RateLimit-Remaining"] = str(remaining)
            return response

        expected = self.settings.signature
        if expected:
            provided = request.query.get("signature", "")
            if not validate_signature(provided, expected):
                log.warning("Invalid signature", signature_provided=bool(provided))
                return self._error_response(Outcome.FORBIDDEN)

        return None

    def _process(self, request: IncomingRequest, log: Any) -> tuple[Outcome, str | None]:
        content_type = request.header("Content-Type").lower()

        if validate_content_type(content_type, (FORM_CONTENT_TYPE,)):
            kind = "threshold"
            # Repeated keys: the last occurrence wins
            data: Any = dict(parse_qsl(request.body, keep_blank_values=True))
        elif validate_content_type(content_type, (JSON_CONTENT_TYPE,)):
            kind = "event"
            try:
                data = json.loads(request.body)
            except json.JSONDecodeError as e:
                log.warning("Invalid JSON body", error=e.msg)
                return Outcome.PARSE_ERROR, f"Invalid JSON: {e.msg}"
            if not isinstance(data, dict):
                log.error("Webhook processing failed", errors=["JSON payload must be an object"])
                return Outcome.PROCESSING_FAILED, None
        else:
            log.warning("Unsupported content type", content_type=content_type)
            return Outcome.UNSUPPORTED_CONTENT_TYPE, None

        data = sanitize_data(data)

        validator = validate_threshold_alarm if kind == "threshold" else validate_event_alarm
        validation = validator(data)
        if not validation.valid:
            log.error("Webhook processing failed", alarm_type=kind, errors=validation.errors)
            return Outcome.PROCESSING_FAILED, None

        formatter = format_threshold_message if kind == "threshold" else format_event_message
        text = formatter(self.settings.prefix, data)

        if not self.sender.send(self.settings.telegram_chat_id, text):
            log.error("Webhook processing failed", alarm_type=kind, errors=["Failed to send Telegram message"])
            return Outcome.SEND_FAILED, None

        return Outcome.SUCCESS, None

    @staticmethod
    def _success_response() -> WebhookResponse:
        return WebhookResponse(
            status_code=Outcome.SUCCESS.status_code,
            headers={"Content-Type": "text/plain"},
            body=Outcome.SUCCESS.message,
        )

    @staticmethod
    def _error_response(outcome: Outcome, detail: str | None = None) -> WebhookResponse:
        return WebhookResponse(
            status_code=outcome.status_code,
            headers={"Content-Type": "application/json"},
            body=json.dumps({"error": detail or outcome.message, "timestamp": _iso_timestamp()}),
        )
