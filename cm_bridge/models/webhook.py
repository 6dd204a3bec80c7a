"""
Webhook models for cm-bridge.

This module contains Pydantic models for the transport-neutral request and
response handled by the webhook dispatcher, and for validation results.
"""

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field


class ValidationResult(BaseModel):
    """Outcome of validating a payload; errors are human-readable."""

    valid: bool
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ValidationResult":
        """Build a result that is valid exactly when ``errors`` is empty."""
        return cls(valid=not errors, errors=list(errors))


class IncomingRequest(BaseModel):
    """One inbound webhook call, as seen by the dispatcher."""

    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    query: dict[str, str] = Field(default_factory=dict)
    client_identifier: str = "unknown"

    def header(self, name: str, default: str = "") -> str:
        """
        Look up a header regardless of its casing.

        Args:
            name: Header name, e.g. "Content-Type"
            default: Value returned when the header is absent

        Returns:
            Header value
        """
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default

    @classmethod
    def from_parts(
        cls,
        method: str,
        headers: Mapping[str, str],
        body: bytes | str,
        query: Mapping[str, str] | None = None,
        client_identifier: str | None = None,
    ) -> "IncomingRequest":
        """Build a request from raw transport values, decoding a bytes body."""
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        return cls(
            method=method,
            headers=dict(headers),
            body=body,
            query=dict(query or {}),
            client_identifier=client_identifier or "unknown",
        )


class WebhookResponse(BaseModel):
    """HTTP-shaped result handed back to the transport."""

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
