"""HTML sanitization for stored post content.

Security contract:
- Allowlist only: tags, attributes and URL protocols not listed are dropped
- Disallowed tags are stripped (their text survives, escaped), never rendered
- Entity-encoded protocols (jav&#x61;script:) are decoded before the check
- Sanitization is ON unless a caller is inside sanitization_disabled()

The enabled flag is a ContextVar: a disabled scope is visible only to the
code running inside it, never to other requests served concurrently.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

import bleach

logger = logging.getLogger(__name__)

ALLOWED_TAGS = frozenset({
    "a", "abbr", "b", "blockquote", "br", "caption", "cite", "code", "div",
    "em", "figcaption", "figure", "h1", "h2", "h3", "h4", "h5", "h6", "hr",
    "i", "img", "li", "ol", "p", "pre", "s", "span", "strong", "sub", "sup",
    "table", "tbody", "td", "tfoot", "th", "thead", "tr", "u", "ul",
})

ALLOWED_ATTRIBUTES = {
    "a": ["href", "title", "target", "rel"],
    "img": ["src", "alt", "title", "width", "height"],
    "td": ["colspan", "rowspan"],
    "th": ["colspan", "rowspan"],
    "*": ["class", "id"],
}

ALLOWED_PROTOCOLS = frozenset({"http", "https", "mailto"})

_sanitization_enabled: ContextVar[bool] = ContextVar(
    "storyhook_sanitization_enabled", default=True
)


def sanitize_html(text: str) -> str:
    """Reduce an HTML fragment to the allowlisted markup."""
    if not text:
        return text
    cleaned = bleach.clean(
        text,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
    )
    if cleaned != text:
        logger.debug("Post content sanitized (%d -> %d chars)", len(text), len(cleaned))
    return cleaned


def is_sanitization_enabled() -> bool:
    return _sanitization_enabled.get()


def maybe_sanitize(text: str) -> str:
    """Sanitize text unless the current scope disabled sanitization."""
    if is_sanitization_enabled():
        return sanitize_html(text)
    return text


@contextmanager
def sanitization_disabled() -> Iterator[None]:
    """Disable sanitization for the enclosed block.

    The previous state is restored on every exit path, including errors.
    """
    token = _sanitization_enabled.set(False)
    logger.debug("Content sanitization disabled")
    try:
        yield
    finally:
        _sanitization_enabled.reset(token)
        logger.debug("Content sanitization restored (enabled=%s)", is_sanitization_enabled())
