"""Webhook event handlers — one per StoryChief event type.

Maps meta.event to a handler and encodes the side-effect ordering:
- publish: create the post, then fire the save/sideload/after hooks
- update:  look the post up first; unknown id -> 404 before anything runs
- delete:  delete by id, no existence check
- test:    connectivity check, notify only
- anything else: empty result, no side effects

Security contract:
- Story HTML is written with sanitization disabled for exactly one store call
- Lifecycle hook failures never abort a handler (isolated in the hook bus)
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import pydantic

from storyhook.content.sanitizer import sanitization_disabled
from storyhook.content.store import (
    DEFAULT_POST_TYPE,
    STATUS_DRAFT,
    STATUS_PUBLISH,
    ContentStore,
    PostDraft,
)
from storyhook.plugins.hooks import SAVE_ACTIONS, apply_filters, do_action
from storyhook.settings import OPTION_POST_TYPE, OPTION_TEST_MODE, OptionStore
from storyhook.webhooks.errors import NotFoundError, ValidationError
from storyhook.webhooks.models import Story

logger = logging.getLogger(__name__)

# Post meta key holding the AMP version of the story
AMPHTML_META_KEY = "_amphtml"

Handler = Callable[[dict[str, Any], ContentStore, OptionStore], Any]


# ── Helpers ──────────────────────────────────────────────────────────────


def parse_story(payload: dict[str, Any]) -> Story:
    """Validate payload["data"] as a Story."""
    data = payload.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("The story data is invalid", code="invalid_story")
    try:
        return Story.model_validate(data)
    except pydantic.ValidationError as e:
        logger.info("Story rejected: %s", e.errors(include_url=False))
        raise ValidationError("The story data is invalid", code="invalid_story") from e


def _require_post_id(story: Story) -> int:
    post_id = story.post_id
    if post_id is None:
        raise ValidationError(
            "The external_id is missing or invalid", code="invalid_external_id"
        )
    return post_id


def _resolve_draft(story: Story, options: OptionStore) -> bool:
    is_draft = bool(options.get(OPTION_TEST_MODE, False))
    return bool(apply_filters("is_draft_status", is_draft, story.to_payload()))


def _resolve_post_type(story: Story, options: OptionStore) -> str:
    post_type = options.get(OPTION_POST_TYPE) or DEFAULT_POST_TYPE
    post_type = apply_filters("change_post_type", post_type, story.to_payload())
    if not isinstance(post_type, str) or not post_type:
        logger.warning("change_post_type returned %r, using %s", post_type, DEFAULT_POST_TYPE)
        return DEFAULT_POST_TYPE
    return post_type


def build_draft(
    story: Story,
    *,
    is_draft: bool,
    post_type: str | None = None,
    post_id: int | None = None,
) -> PostDraft:
    """Translate a story into a store write request."""
    draft = PostDraft(
        id=post_id,
        post_type=post_type,
        title=story.title,
        content=story.content,
        excerpt=story.excerpt or "",
        status=STATUS_DRAFT if is_draft else STATUS_PUBLISH,
    )
    if story.seo_slug:
        draft.slug = story.seo_slug
    if story.amphtml is not None:
        draft.meta[AMPHTML_META_KEY] = story.amphtml
    return draft


def _save_story(story: Story, draft: PostDraft, store: ContentStore) -> dict[str, Any]:
    """Write the draft, fire the post-save hooks and build the response."""
    with sanitization_disabled():
        post_id = store.upsert(draft)

    story_data = story.to_payload()
    story_data["external_id"] = post_id

    for hook in SAVE_ACTIONS:
        do_action(hook, story_data)
    do_action("sideload_images_action", post_id)
    do_action("after_publish_action", story_data)

    # Caching layers listen here to drop anything scoped to this post.
    do_action("clean_post_cache", post_id)

    return {
        "id": post_id,
        "permalink": store.get_permalink(post_id),
    }


# ── Handlers ─────────────────────────────────────────────────────────────


def handle_publish(payload: dict[str, Any], store: ContentStore, options: OptionStore) -> dict[str, Any]:
    """Create a post from the story. Any external_id on the story is ignored."""
    story = parse_story(payload)

    do_action("before_publish_action", story.to_payload())

    draft = build_draft(
        story,
        is_draft=_resolve_draft(story, options),
        post_type=_resolve_post_type(story, options),
    )
    return _save_story(story, draft, store)


def handle_update(payload: dict[str, Any], store: ContentStore, options: OptionStore) -> dict[str, Any]:
    """Overwrite the existing post identified by external_id."""
    story = parse_story(payload)
    post_id = _require_post_id(story)

    if not store.get_status(post_id):
        raise NotFoundError()

    do_action("before_publish_action", story.to_payload())

    draft = build_draft(story, is_draft=_resolve_draft(story, options), post_id=post_id)
    return _save_story(story, draft, store)


def handle_delete(payload: dict[str, Any], store: ContentStore, options: OptionStore) -> dict[str, Any]:
    """Delete the post identified by external_id. Missing posts are not an error."""
    story = parse_story(payload)
    post_id = _require_post_id(story)

    store.delete(post_id)

    do_action("after_delete_action", story.to_payload())

    return {
        "id": post_id,
        "permalink": None,
    }


def handle_connection_check(payload: dict[str, Any], store: ContentStore, options: OptionStore) -> dict[str, Any]:
    """Connectivity/authentication check from StoryChief. No content side effects."""
    do_action("after_test_action", payload.get("data"))
    return {}


def handle_unknown(payload: dict[str, Any], store: ContentStore, options: OptionStore) -> dict[str, Any]:
    event = (payload.get("meta") or {}).get("event")
    logger.info("Unrecognized webhook event: %s, skipping", event)
    return {}


EVENT_HANDLERS: dict[str, Handler] = {
    "publish": handle_publish,
    "update": handle_update,
    "delete": handle_delete,
    "test": handle_connection_check,
}


def get_handler(event: str) -> Handler:
    """Exact, case-sensitive lookup; everything unrecognized gets handle_unknown."""
    return EVENT_HANDLERS.get(event, handle_unknown)


def dispatch_event(
    event: str,
    payload: dict[str, Any],
    store: ContentStore,
    options: OptionStore,
) -> Any:
    """Run the handler for event. WebhookError subclasses propagate."""
    handler = get_handler(event)
    logger.info("Dispatching webhook event: %s -> %s", event, handler.__name__)
    return handler(payload, store, options)
