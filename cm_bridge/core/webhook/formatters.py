"""
Message formatting for relayed alarms.

Messages use Telegram's legacy Markdown: the bold part names what is
affected and inline code marks identifiers.
"""

from collections.abc import Mapping
from typing import Any

from cm_bridge.constants import NO_DESCRIPTION_TEXT

__all__ = ["format_event_message", "format_threshold_message"]


def format_threshold_message(prefix: str, data: Mapping[str, Any]) -> str:
    """
    Format a validated threshold alarm.

    Example:
        ``[CM] *CPU Usage CPUUtilization* for `web-01` is `ALARM`. Value: 85.5``
    """
    return (
        f"{prefix}*{data['alertName']} {data['metricName']}* "
        f"for `{data['instanceName']}` is `{data['alertState']}`. "
        f"Value: {data['curValue']}"
    )


def _event_content(data: Mapping[str, Any]) -> Mapping[str, Any]:
    content = data.get("content")
    return content if isinstance(content, Mapping) else {}


def resolve_event_identity(data: Mapping[str, Any]) -> str:
    """First entry of ``content.instanceIds`` if there is one, else ``instanceName``."""
    instance_ids = _event_content(data).get("instanceIds")
    if isinstance(instance_ids, (list, tuple)) and instance_ids and instance_ids[0] is not None:
        return str(instance_ids[0])
    return str(data["instanceName"])


def resolve_event_description(data: Mapping[str, Any]) -> str:
    description = _event_content(data).get("description")
    if description is None:
        return NO_DESCRIPTION_TEXT
    return str(description)


def format_event_message(prefix: str, data: Mapping[str, Any]) -> str:
    """
    Format a validated event alarm.

    Example:
        ``[CM] *i-123* - `Instance_Failure`\\ndown``
    """
    identity = resolve_event_identity(data)
    description = resolve_event_description(data)
    return f"{prefix}*{identity}* - `{data['name']}`\n{description}"
