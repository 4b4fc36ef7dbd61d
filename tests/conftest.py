"""Shared fixtures for the storyhook test suite."""

from __future__ import annotations

import copy
import json
from typing import Any
from unittest.mock import patch

import pytest

from storyhook.content.store import InMemoryContentStore, set_content_store
from storyhook.plugins.registry import HookBus
from storyhook.settings import InMemoryOptionStore, set_option_store
from storyhook.webhooks.verification import compute_mac

SECRET = "storychief-test-key"


@pytest.fixture(autouse=True)
def _shared_secret():
    """Every test runs with a known encryption key configured."""
    with patch("storyhook.webhooks.verification._ENCRYPTION_KEY", SECRET):
        yield


@pytest.fixture(autouse=True)
def _clean_hook_bus() -> Any:
    HookBus.reset()
    yield
    HookBus.reset()


@pytest.fixture()
def store() -> InMemoryContentStore:
    return InMemoryContentStore()


@pytest.fixture()
def options() -> InMemoryOptionStore:
    return InMemoryOptionStore({"test_mode": False})


@pytest.fixture()
def installed(store, options):
    """Install the fixture store/options as the process-wide singletons."""
    set_content_store(store)
    set_option_store(options)
    yield store, options
    set_content_store(None)
    set_option_store(None)


def _sign_payload(payload: dict[str, Any], secret: str = SECRET) -> dict[str, Any]:
    """Attach meta.mac the way StoryChief does."""
    signed = copy.deepcopy(payload)
    signed.setdefault("meta", {})
    signed["meta"].pop("mac", None)
    signed["meta"]["mac"] = compute_mac(signed, secret)
    return signed


@pytest.fixture()
def sign():
    """Factory: sign(payload, secret=SECRET) -> payload with meta.mac."""
    return _sign_payload


@pytest.fixture()
def signed_body():
    """Factory: signed_body(payload) -> JSON request body with a valid MAC."""

    def _make(payload: dict[str, Any]) -> str:
        return json.dumps(_sign_payload(payload))

    return _make


@pytest.fixture()
def response_mac_valid():
    """Factory: response_mac_valid(response) -> True if the top-level mac checks out."""

    def _check(response: dict[str, Any]) -> bool:
        body = {k: v for k, v in response.items() if k != "mac"}
        return response.get("mac") == compute_mac(body, SECRET)

    return _check
