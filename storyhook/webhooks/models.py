"""Payload schema — validates the loosely-typed JSON at the decode boundary.

Only the fields the core reads are typed; everything else on a story
(author, tags, categories, featured image, SEO ...) is carried through
untouched for hook subscribers.
"""

from __future__ import annotations

import copy
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, PrivateAttr, field_validator, model_validator

_DIGITS = re.compile(r"^\s*\d{1,10}\s*$")

# Post ids are int4 in storage
MAX_POST_ID = 2**31 - 1


def coerce_external_id(value: Any) -> int | None:
    """Convert a wire external_id to a post id.

    Accepts ints, integral floats and strings of ASCII digits in the range
    1..MAX_POST_ID. Returns None for anything else (bools, fractional floats,
    other strings, out-of-range values, missing).
    """
    if isinstance(value, bool):
        parsed = None
    elif isinstance(value, int):
        parsed = value
    elif isinstance(value, float) and value.is_integer():
        parsed = int(value)
    elif isinstance(value, str) and _DIGITS.match(value) and value.isascii():
        parsed = int(value)
    else:
        parsed = None
    if parsed is None or not 0 < parsed <= MAX_POST_ID:
        return None
    return parsed


class Story(BaseModel):
    """A StoryChief story as received in payload["data"]."""

    model_config = ConfigDict(extra="allow")

    title: str = ""
    content: str = ""
    excerpt: Optional[str] = None
    seo_slug: Optional[str] = None
    amphtml: Optional[str] = None
    external_id: Any = None

    _raw: dict[str, Any] = PrivateAttr(default_factory=dict)

    @model_validator(mode="wrap")
    @classmethod
    def _keep_raw(cls, data: Any, handler: Any) -> Story:
        story = handler(data)
        if isinstance(data, dict):
            story._raw = copy.deepcopy(data)
        return story

    @field_validator("title", "content", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def post_id(self) -> int | None:
        return coerce_external_id(self.external_id)

    def to_payload(self) -> dict[str, Any]:
        """The story mapping exactly as received, for hook subscribers."""
        return copy.deepcopy(self._raw)
