"""Webhook event router — authenticates, routes and re-signs one request.

Order of gates (each terminal on failure):
1. Decode JSON (malformed -> empty mapping, never an exception)
2. MAC check            -> 400 invalid_mac
3. meta.event present   -> 400 no_event_type
4. before_handle_filter may rewrite the payload
5. meta.fb-page-ids is persisted as a site option
6. Dispatch to exactly one handler
7. Handler errors are returned as-is (no response filter, no MAC)
8. alter_response may rewrite the result
9. Non-null results are signed

Warnings raised while handling go to the py.warnings logger (captured once
in create_app). Nothing written to stdout reaches the response body.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from storyhook.content.store import ContentStore, get_content_store
from storyhook.plugins.hooks import apply_filters
from storyhook.settings import OPTION_FB_PAGES, OptionStore, get_option_store
from storyhook.webhooks.dispatcher import EVENT_HANDLERS, dispatch_event
from storyhook.webhooks.errors import AuthError, ValidationError, WebhookError
from storyhook.webhooks.verification import append_mac, verify_mac

logger = logging.getLogger(__name__)

# Receive counter, reported in audit lines. Keyed by known event names plus
# the two buckets below, never by raw caller input.
_webhook_counts: dict[str, int] = {}

AUDIT_OTHER = "other"
AUDIT_UNAUTHENTICATED = "unauthenticated"

FB_PAGES_META_KEY = "fb-page-ids"


def _audit_key(event: Any) -> str:
    if isinstance(event, str) and event in EVENT_HANDLERS:
        return event
    return AUDIT_OTHER


def _log_webhook(key: str, status: str) -> None:
    """Audit log for webhook activity."""
    _webhook_counts[key] = _webhook_counts.get(key, 0) + 1
    logger.info(
        "WEBHOOK_AUDIT event=%s status=%s count=%d",
        key,
        status,
        _webhook_counts[key],
    )


def decode_payload(raw_body: bytes | str) -> dict[str, Any]:
    """Decode the request body. Anything but a JSON object becomes {}."""
    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        logger.info("Webhook body is not valid JSON, treating as empty payload")
        return {}
    if not isinstance(payload, dict):
        return {}
    return payload


def event_type(payload: dict[str, Any]) -> str:
    """Return meta.event or raise ValidationError (no_event_type)."""
    meta = payload.get("meta")
    event = meta.get("event") if isinstance(meta, dict) else None
    if not isinstance(event, str):
        raise ValidationError()
    return event


def _route(payload: dict[str, Any], store: ContentStore, options: OptionStore) -> Any:
    if not verify_mac(payload):
        raise AuthError()
    event_type(payload)

    filtered = apply_filters("before_handle_filter", payload)
    if isinstance(filtered, dict):
        payload = filtered
    else:
        logger.warning("before_handle_filter returned %s, keeping original payload", type(filtered).__name__)
    event = event_type(payload)

    meta = payload["meta"]
    if FB_PAGES_META_KEY in meta:
        options.set(OPTION_FB_PAGES, meta[FB_PAGES_META_KEY])

    response = dispatch_event(event, payload, store, options)
    _log_webhook(_audit_key(event), "handled")

    altered = apply_filters("alter_response", response)
    if altered is None or isinstance(altered, dict):
        response = altered
    else:
        logger.warning("alter_response returned %s, keeping handler response", type(altered).__name__)

    if response is not None:
        response = append_mac(response)
    return response


def handle(
    raw_body: bytes | str,
    *,
    store: ContentStore | None = None,
    options: OptionStore | None = None,
) -> tuple[Any, int]:
    """Handle one webhook request body.

    Returns:
        (response_body, http_status). The body is a signed mapping, None,
        or an error mapping {code, message, data}.
    """
    store = store if store is not None else get_content_store()
    options = options if options is not None else get_option_store()

    payload = decode_payload(raw_body)
    try:
        return _route(payload, store, options), 200
    except WebhookError as e:
        if isinstance(e, AuthError):
            key = AUDIT_UNAUTHENTICATED
        else:
            meta = payload.get("meta")
            key = _audit_key(meta.get("event") if isinstance(meta, dict) else None)
        _log_webhook(key, e.code)
        return e.to_dict(), e.status
