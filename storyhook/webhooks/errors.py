"""Webhook error taxonomy.

Every error is terminal for the request and maps to a stable,
machine-readable ``code`` plus an HTTP status. The JSON body shape is
``{"code", "message", "data": {"status"}}``.
"""

from __future__ import annotations

from typing import Any


class WebhookError(Exception):
    """Base class for errors returned to the webhook caller."""

    code: str = "webhook_error"
    status: int = 400
    default_message: str = "The webhook could not be handled"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "data": {"status": self.status},
        }


class AuthError(WebhookError):
    """MAC missing or invalid."""

    code = "invalid_mac"
    status = 400
    default_message = "The Mac is invalid"


class ValidationError(WebhookError):
    """Payload failed schema validation (missing event type, bad story, bad id)."""

    code = "no_event_type"
    status = 400
    default_message = "The event is not set"


class NotFoundError(WebhookError):
    """Update target does not exist in the content store."""

    code = "post_not_found"
    status = 404
    default_message = "The post could not be found"
