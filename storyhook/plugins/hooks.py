"""Hook definitions — declares every extension point the webhook exposes.

The hook names are the wire contract with external collaborators (author,
taxonomy, image, SEO and cache integrations). Filters transform and return
a value; actions are one-way notifications.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from storyhook.plugins.registry import HookBus, HookKind, Subscriber

logger = logging.getLogger(__name__)


# ── Hook Definitions ─────────────────────────────────────────────────────

# Maps hook name → contract
HOOK_KIND_MAP: dict[str, HookKind] = {
    # Router filters
    "before_handle_filter": HookKind.FILTER,   # payload -> payload
    "alter_response": HookKind.FILTER,         # response -> response
    # Publish/update filters (story passed as context)
    "is_draft_status": HookKind.FILTER,        # bool -> bool
    "change_post_type": HookKind.FILTER,       # str -> str
    # Publish/update lifecycle, in firing order
    "before_publish_action": HookKind.ACTION,
    "save_author_action": HookKind.ACTION,
    "save_tags_action": HookKind.ACTION,
    "save_categories_action": HookKind.ACTION,
    "save_featured_image_action": HookKind.ACTION,
    "save_seo_action": HookKind.ACTION,
    "sideload_images_action": HookKind.ACTION,  # receives the post id only
    "after_publish_action": HookKind.ACTION,
    # Other events
    "after_delete_action": HookKind.ACTION,
    "after_test_action": HookKind.ACTION,
    # Entity-scoped cache invalidation, receives the post id
    "clean_post_cache": HookKind.ACTION,
}

# Lifecycle actions fired after a successful store write, in order
SAVE_ACTIONS: tuple[str, ...] = (
    "save_author_action",
    "save_tags_action",
    "save_categories_action",
    "save_featured_image_action",
    "save_seo_action",
)


def get_hook_kind(hook: str) -> HookKind | None:
    """Get the declared contract of a hook."""
    return HOOK_KIND_MAP.get(hook)


def list_hooks() -> list[dict[str, str]]:
    """List all available hooks with their kind."""
    return [
        {"hook": hook, "kind": kind.value}
        for hook, kind in HOOK_KIND_MAP.items()
    ]


def _require_kind(hook: str, kind: HookKind) -> None:
    declared = get_hook_kind(hook)
    if declared is None:
        raise ValueError(f"Unknown hook: {hook}")
    if declared != kind:
        raise ValueError(f"Hook '{hook}' is a {declared.value}, not a {kind.value}")


# ── Registration ─────────────────────────────────────────────────────────


def add_filter(
    hook: str,
    callback: Callable[..., Any],
    *,
    priority: int = 10,
    name: str | None = None,
) -> Subscriber:
    """Register a filter: callback(value, *context) -> value."""
    _require_kind(hook, HookKind.FILTER)
    return HookBus().subscribe(hook, callback, kind=HookKind.FILTER, priority=priority, name=name)


def add_action(
    hook: str,
    callback: Callable[..., Any],
    *,
    priority: int = 10,
    name: str | None = None,
) -> Subscriber:
    """Register an action: callback(*args), return value ignored."""
    _require_kind(hook, HookKind.ACTION)
    return HookBus().subscribe(hook, callback, kind=HookKind.ACTION, priority=priority, name=name)


# ── Dispatch Functions ───────────────────────────────────────────────────


def apply_filters(hook: str, value: Any, *context: Any) -> Any:
    """Run value through the filters on hook. Unknown hooks return value untouched."""
    if get_hook_kind(hook) != HookKind.FILTER:
        logger.warning("Unknown filter hook: %s", hook)
        return value
    return HookBus().apply_filters(hook, value, *context)


def do_action(hook: str, *args: Any) -> int:
    """Notify the actions on hook. Unknown hooks are a no-op."""
    if get_hook_kind(hook) != HookKind.ACTION:
        logger.warning("Unknown action hook: %s", hook)
        return 0
    return HookBus().do_action(hook, *args)
