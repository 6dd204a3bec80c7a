"""
Validation utilities for cm-bridge.

This module validates the two CloudMonitor alarm payload shapes and
sanitizes untrusted nested input. Every function here is pure: invalid
input is reported through ``ValidationResult.errors`` or a ``False``
return value, never by raising.
"""

import hmac
import re
from collections.abc import Iterable, Mapping
from typing import Any

from cm_bridge.constants import (
    MAX_EVENT_CONTENT_LENGTH,
    MAX_IDENTIFIER_LENGTH,
    MAX_STRING_LENGTH,
)
from cm_bridge.models.webhook import ValidationResult

THRESHOLD_ALARM_FIELDS = ("alertName", "alertState", "curValue", "instanceName", "metricName")
EVENT_ALARM_FIELDS = ("product", "level", "instanceName", "name")
CLOUD_EVENT_FIELDS = ("id", "status", "severity")

ALERT_STATES = {"OK", "ALARM", "INSUFFICIENT_DATA", "CRITICAL", "WARNING", "INFO"}
ALERT_LEVELS = {"CRITICAL", "WARN", "INFO", "HIGH", "MEDIUM", "LOW"}
CLOUD_EVENT_STATUSES = {"ALARM", "OK", "INSUFFICIENT_DATA"}
CLOUD_EVENT_SEVERITIES = {"CRITICAL", "WARN", "INFO"}

# Letters, digits, whitespace, "-", "_", ".", ":"
ALERT_NAME_PATTERN = re.compile(r"[a-zA-Z0-9\s\-_.:]{1,100}", re.ASCII)
EVENT_NAME_PATTERN = ALERT_NAME_PATTERN
INSTANCE_NAME_PATTERN = re.compile(r"[a-zA-Z0-9\-_.]{1,100}", re.ASCII)
METRIC_NAME_PATTERN = re.compile(r"[a-zA-Z0-9\s\-_./%]{1,100}", re.ASCII)
PRODUCT_NAME_PATTERN = re.compile(r"[a-zA-Z0-9\s\-_]{1,50}", re.ASCII)

# "85.5", "85 %", "1024MB"
METRIC_VALUE_PATTERN = re.compile(r"[0-9]+\.?[0-9]*\s*[a-zA-Z%]*", re.ASCII)
# Plain numeric literal: optional sign, decimals, exponent
NUMERIC_PATTERN = re.compile(r"\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*", re.ASCII)

# Control characters except tab and newline
CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
IDENTIFIER_UNSAFE_PATTERN = re.compile(r"[^a-zA-Z0-9\-_.]")

__all__ = [
    "sanitize_data",
    "sanitize_identifier",
    "sanitize_string",
    "validate_alibaba_cloud_webhook",
    "validate_content_type",
    "validate_event_alarm",
    "validate_http_method",
    "validate_signature",
    "validate_threshold_alarm",
]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    return str(value).strip() == ""


def _missing_fields(data: Mapping[str, Any], fields: Iterable[str], label: str = "field") -> list[str]:
    return [
        f"Required {label} '{field}' is missing or empty"
        for field in fields
        if _is_blank(data.get(field))
    ]


def _matches(pattern: re.Pattern[str], value: Any) -> bool:
    return isinstance(value, (str, int, float)) and pattern.fullmatch(str(value)) is not None


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and NUMERIC_PATTERN.fullmatch(value) is not None


def is_valid_metric_value(value: Any) -> bool:
    """True for numbers and for number-with-unit strings such as ``85 %``."""
    return _is_numeric(value) or _matches(METRIC_VALUE_PATTERN, value)


def is_valid_event_content(content: Any) -> bool:
    """
    Check the optional ``content`` member of an event alarm.

    A mapping must carry ``description`` or ``instanceIds``; a string must be
    at most 1000 characters. Any other shape is rejected.
    """
    if isinstance(content, Mapping):
        return content.get("description") is not None or content.get("instanceIds") is not None
    if isinstance(content, str):
        return len(content) <= MAX_EVENT_CONTENT_LENGTH
    return False


def validate_threshold_alarm(data: Mapping[str, Any]) -> ValidationResult:
    """
    Validate a threshold (metric) alarm.

    When any required field is missing only the missing-field errors are
    reported; format checks run only once every field is present, and then
    all of them run.

    Args:
        data: Sanitized form fields

    Returns:
        ValidationResult with one error per problem
    """
    errors = _missing_fields(data, THRESHOLD_ALARM_FIELDS)
    if errors:
        return ValidationResult.from_errors(errors)

    if not _matches(ALERT_NAME_PATTERN, data["alertName"]):
        errors.append("Invalid alert name format")
    if str(data["alertState"]).upper() not in ALERT_STATES:
        errors.append("Invalid alert state")
    if not is_valid_metric_value(data["curValue"]):
        errors.append("Invalid metric value")
    if not _matches(INSTANCE_NAME_PATTERN, data["instanceName"]):
        errors.append("Invalid instance name format")
    if not _matches(METRIC_NAME_PATTERN, data["metricName"]):
        errors.append("Invalid metric name format")

    return ValidationResult.from_errors(errors)


def validate_event_alarm(data: Mapping[str, Any]) -> ValidationResult:
    """
    Validate an event alarm.

    Same missing-field policy as ``validate_threshold_alarm``. ``content`` is
    optional and only checked when present.

    Args:
        data: Sanitized JSON object

    Returns:
        ValidationResult with one error per problem
    """
    errors = _missing_fields(data, EVENT_ALARM_FIELDS)
    if errors:
        return ValidationResult.from_errors(errors)

    if not _matches(PRODUCT_NAME_PATTERN, data["product"]):
        errors.append("Invalid product name format")
    if str(data["level"]).upper() not in ALERT_LEVELS:
        errors.append("Invalid alert level")
    if not _matches(INSTANCE_NAME_PATTERN, data["instanceName"]):
        errors.append("Invalid instance name format")
    if not _matches(EVENT_NAME_PATTERN, data["name"]):
        errors.append("Invalid event name format")
    if data.get("content") is not None and not is_valid_event_content(data["content"]):
        errors.append("Invalid event content format")

    return ValidationResult.from_errors(errors)


def validate_alibaba_cloud_webhook(data: Mapping[str, Any]) -> ValidationResult:
    """
    Validate any supported payload by inspecting its shape.

    - ``event`` object: cloud event with ``id``, ``status`` and ``severity``
    - ``product`` and ``level``: event alarm
    - ``alertName`` or ``metricName``: threshold alarm

    Args:
        data: Sanitized payload

    Returns:
        ValidationResult
    """
    if data.get("event") is not None:
        event = data["event"] if isinstance(data["event"], Mapping) else {}
        errors = _missing_fields(event, CLOUD_EVENT_FIELDS, label="event field")

        status = event.get("status")
        if status is not None and status not in CLOUD_EVENT_STATUSES:
            errors.append("Invalid event status")

        severity = event.get("severity")
        if severity is not None and severity not in CLOUD_EVENT_SEVERITIES:
            errors.append("Invalid event severity")

        return ValidationResult.from_errors(errors)

    if data.get("product") is not None and data.get("level") is not None:
        return validate_event_alarm(data)

    if data.get("alertName") is not None or data.get("metricName") is not None:
        return validate_threshold_alarm(data)

    return ValidationResult.from_errors(["Unknown webhook format - missing required fields"])


def sanitize_string(value: str) -> str:
    """
    Sanitize one untrusted string.

    Removes control characters other than tab and newline, trims
    surrounding whitespace and caps the length at 10000 characters.
    """
    value = CONTROL_CHARS_PATTERN.sub("", value).strip()
    if len(value) > MAX_STRING_LENGTH:
        value = value[:MAX_STRING_LENGTH].rstrip()
    return value


def sanitize_data(data: Any) -> Any:
    """
    Recursively sanitize every string in a nested structure.

    Mappings, lists and tuples keep their shape and ordering; non-string
    leaves are returned unchanged. ``sanitize_data`` is idempotent.

    Args:
        data: Parsed payload (mapping, sequence or scalar)

    Returns:
        Sanitized copy of ``data``
    """
    if isinstance(data, str):
        return sanitize_string(data)
    if isinstance(data, Mapping):
        return {key: sanitize_data(value) for key, value in data.items()}
    if isinstance(data, list):
        return [sanitize_data(item) for item in data]
    if isinstance(data, tuple):
        return tuple(sanitize_data(item) for item in data)
    return data


def sanitize_identifier(identifier: str) -> str:
    """
    Reduce a rate-limit identifier to a safe storage key.

    Keeps letters, digits, "-", "_" and "." and truncates to 50 characters,
    so an identifier can never name a path outside the storage root.
    """
    return IDENTIFIER_UNSAFE_PATTERN.sub("", identifier)[:MAX_IDENTIFIER_LENGTH]


def validate_signature(provided: str | None, expected: str | None) -> bool:
    """
    Compare a provided shared secret with the expected one in constant time.

    Returns False when either side is empty.
    """
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def validate_http_method(method: str, allowed: Iterable[str] = ("POST",)) -> bool:
    """Case-insensitive membership check of ``method`` in ``allowed``."""
    return method.upper() in {m.upper() for m in allowed}


def validate_content_type(content_type: str, allowed: Iterable[str]) -> bool:
    """True when ``content_type`` contains any of the ``allowed`` substrings."""
    return any(allowed_type in content_type for allowed_type in allowed)
