"""Site-wide options read and written outside the request body.

Known options:
- test_mode      (bool)   new and updated stories are saved as drafts
- post_type      (str)    content type for new stories, default "post"
- meta_fb_pages  (opaque) Facebook page ids pushed by StoryChief in meta
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

OPTION_TEST_MODE = "test_mode"
OPTION_POST_TYPE = "post_type"
OPTION_FB_PAGES = "meta_fb_pages"

_STORE_BACKEND = os.environ.get("STORYHOOK_STORE", "memory")

_TRUTHY = {"1", "true", "yes", "on"}


@runtime_checkable
class OptionStore(Protocol):
    """Key-value site option storage."""

    def get(self, name: str, default: Any = None) -> Any: ...

    def set(self, name: str, value: Any) -> None: ...


def _env_defaults() -> dict[str, Any]:
    """Initial options taken from the environment (unset vars are skipped)."""
    defaults: dict[str, Any] = {}
    test_mode = os.environ.get("STORYHOOK_TEST_MODE")
    if test_mode is not None:
        defaults[OPTION_TEST_MODE] = test_mode.strip().lower() in _TRUTHY
    post_type = os.environ.get("STORYHOOK_POST_TYPE")
    if post_type:
        defaults[OPTION_POST_TYPE] = post_type
    return defaults


class InMemoryOptionStore:
    """Process-local option store, seeded from the environment."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = _env_defaults()
        self._values.update(initial or {})
        self._lock = threading.Lock()

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def set(self, name: str, value: Any) -> None:
        with self._lock:
            self._values[name] = value
        logger.info("Option %s updated", name)


# Module-level singleton
_options: OptionStore | None = None


def get_option_store() -> OptionStore:
    """Get or create the singleton option store (STORYHOOK_STORE=memory|postgres)."""
    global _options
    if _options is None:
        if _STORE_BACKEND == "postgres":
            from storyhook.content.postgres import PostgresOptionStore

            _options = PostgresOptionStore()
        else:
            _options = InMemoryOptionStore()
    return _options


def set_option_store(options: OptionStore | None) -> None:
    """Replace the singleton (None resets to lazy creation)."""
    global _options
    _options = options
