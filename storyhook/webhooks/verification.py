"""Webhook MAC verification — constant-time HMAC over the canonical payload.

Security contract:
- All verifications use hmac.compare_digest() (constant-time, no timing attacks)
- Verification failure -> 400 invalid_mac, no payload processing
- Missing secret env var -> verification always fails (fail-closed)
- Inbound MAC lives at meta.mac; outbound MAC is a top-level "mac" field

The publisher signs the output of PHP's json_encode(), so the canonical
form here reproduces it: compact separators, \\uXXXX for non-ASCII,
escaped forward slashes and empty mappings encoded as "[]".
"""

from __future__ import annotations

import copy
import hashlib
import hmac
import json
import logging
import os
from typing import Any

logger = logging.getLogger(__name__)

# Shared secret from environment
_ENCRYPTION_KEY = os.environ.get("STORYCHIEF_ENCRYPTION_KEY", "")

# Name of the MAC field (inside "meta" inbound, top-level outbound)
MAC_FIELD = "mac"


def _php_normalize(value: Any) -> Any:
    """Rewrite empty mappings as empty lists so they encode as "[]"."""
    if isinstance(value, dict):
        if not value:
            return []
        return {k: _php_normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_php_normalize(v) for v in value]
    return value


def canonical_json(value: Any) -> str:
    """Encode a decoded payload exactly as the publisher does before signing."""
    encoded = json.dumps(
        _php_normalize(value),
        separators=(",", ":"),
        ensure_ascii=True,
    )
    # Slashes only ever appear inside string literals in JSON output.
    return encoded.replace("/", "\\/")


def compute_mac(value: Any, secret: str | None = None) -> str:
    """HMAC-SHA256 hex digest of the canonical encoding of value."""
    key = _ENCRYPTION_KEY if secret is None else secret
    return hmac.new(
        key.encode("utf-8"),
        canonical_json(value).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_mac(payload: Any) -> bool:
    """Verify the MAC carried in payload["meta"]["mac"].

    The MAC is recomputed over the payload with the MAC field removed.

    Args:
        payload: Decoded request body (any JSON value)

    Returns:
        True if the MAC is present and valid
    """
    if not _ENCRYPTION_KEY:
        logger.warning("STORYCHIEF_ENCRYPTION_KEY not set, rejecting webhook")
        return False
    if not isinstance(payload, dict):
        return False

    meta = payload.get("meta")
    if not isinstance(meta, dict):
        return False
    given = meta.get(MAC_FIELD)
    if not isinstance(given, str) or not given:
        return False

    unsigned = copy.deepcopy(payload)
    del unsigned["meta"][MAC_FIELD]
    expected = compute_mac(unsigned)

    return hmac.compare_digest(expected, given)


def append_mac(response: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of response with a top-level "mac" field attached.

    Any "mac" already on the response is ignored when computing the code.
    """
    body = {k: v for k, v in response.items() if k != MAC_FIELD}
    signed = dict(body)
    signed[MAC_FIELD] = compute_mac(body)
    return signed
