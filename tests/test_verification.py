"""Tests for webhook MAC verification.

Tests:
- Canonical encoding matches the publisher's json_encode output
- verify_mac: valid, tampered, missing, wrong secret, fail-closed
- append_mac: attaches a verifiable top-level mac
- Property: verify(sign(P)) holds, any tamper breaks it
"""

from __future__ import annotations

import copy
import hashlib
import hmac
from unittest.mock import patch

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from storyhook.webhooks.verification import (
    append_mac,
    canonical_json,
    compute_mac,
    verify_mac,
)

SECRET = "storychief-test-key"


def _hmac(text: str, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), text.encode(), hashlib.sha256).hexdigest()


# ── Canonical Encoding ───────────────────────────────────────────────────


class TestCanonicalJson:
    """Encoding must be byte-identical to what the publisher signs."""

    def test_compact_separators(self):
        assert canonical_json({"a": 1, "b": [1, 2]}) == '{"a":1,"b":[1,2]}'

    def test_escapes_slashes(self):
        assert canonical_json({"url": "https://x.io/a"}) == '{"url":"https:\\/\\/x.io\\/a"}'

    def test_escapes_non_ascii(self):
        assert canonical_json({"t": "café"}) == '{"t":"caf\\u00e9"}'

    def test_empty_mapping_is_list(self):
        assert canonical_json({"data": {}}) == '{"data":[]}'
        assert canonical_json({}) == "[]"

    def test_preserves_key_order(self):
        assert canonical_json({"b": 1, "a": 2}) == '{"b":1,"a":2}'

    def test_nested_empty_mapping_in_list(self):
        assert canonical_json({"x": [{}, {"y": {}}]}) == '{"x":[[],{"y":[]}]}'


# ── verify_mac ───────────────────────────────────────────────────────────


class TestVerifyMac:
    """Inbound MAC lives at meta.mac and covers everything else."""

    def _payload(self) -> dict:
        return {
            "meta": {"event": "publish"},
            "data": {"title": "T", "content": "<p>C</p>", "excerpt": ""},
        }

    def _signed(self) -> dict:
        payload = self._payload()
        payload["meta"]["mac"] = _hmac(canonical_json(self._payload()))
        return payload

    def test_valid_mac(self):
        assert verify_mac(self._signed()) is True

    def test_known_digest(self):
        """Independent HMAC over the literal canonical string."""
        literal = '{"meta":{"event":"publish"},"data":{"title":"T","content":"<p>C<\\/p>","excerpt":""}}'
        payload = self._payload()
        payload["meta"]["mac"] = _hmac(literal)
        assert verify_mac(payload) is True

    def test_tampered_data(self):
        payload = self._signed()
        payload["data"]["title"] = "Other"
        assert verify_mac(payload) is False

    def test_tampered_event(self):
        payload = self._signed()
        payload["meta"]["event"] = "delete"
        assert verify_mac(payload) is False

    def test_wrong_secret(self):
        payload = self._payload()
        payload["meta"]["mac"] = _hmac(canonical_json(self._payload()), "other-secret")
        assert verify_mac(payload) is False

    def test_missing_mac(self):
        assert verify_mac(self._payload()) is False

    def test_non_string_mac(self):
        payload = self._payload()
        payload["meta"]["mac"] = 12345
        assert verify_mac(payload) is False

    def test_missing_meta(self):
        assert verify_mac({"data": {}}) is False

    def test_non_mapping_payload(self):
        assert verify_mac([]) is False
        assert verify_mac(None) is False
        assert verify_mac({}) is False

    def test_does_not_mutate_payload(self):
        payload = self._signed()
        before = copy.deepcopy(payload)
        verify_mac(payload)
        assert payload == before

    @patch("storyhook.webhooks.verification._ENCRYPTION_KEY", "")
    def test_missing_secret_rejects(self):
        """No secret configured -> always reject (fail-closed)."""
        payload = self._payload()
        payload["meta"]["mac"] = _hmac(canonical_json(self._payload()), "")
        assert verify_mac(payload) is False


# ── append_mac ───────────────────────────────────────────────────────────


class TestAppendMac:
    """Outbound MAC is a top-level field over the rest of the response."""

    def test_appends_mac(self):
        signed = append_mac({"id": 7, "permalink": "http://localhost:8000/t/"})
        expected = _hmac('{"id":7,"permalink":"http:\\/\\/localhost:8000\\/t\\/"}')
        assert signed["mac"] == expected
        assert signed["id"] == 7

    def test_empty_response(self):
        assert append_mac({}) == {"mac": _hmac("[]")}

    def test_existing_mac_is_replaced(self):
        signed = append_mac({"id": 1, "mac": "stale"})
        assert signed["mac"] == compute_mac({"id": 1})

    def test_does_not_mutate_input(self):
        response = {"id": 1, "permalink": None}
        append_mac(response)
        assert "mac" not in response


# ── Properties ───────────────────────────────────────────────────────────

_scalars = st.one_of(st.text(max_size=20), st.integers(), st.booleans(), st.none())
_stories = st.dictionaries(st.text(min_size=1, max_size=10), _scalars, max_size=6)
_events = st.sampled_from(["publish", "update", "delete", "test", "archive"])


class TestMacProperties:
    """verify(P) iff meta.mac == HMAC(P without mac)."""

    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(event=_events, story=_stories)
    def test_signed_payload_verifies(self, event, story):
        payload = {"meta": {"event": event}, "data": story}
        payload["meta"]["mac"] = compute_mac({"meta": {"event": event}, "data": story})
        assert verify_mac(payload) is True

    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(event=_events, story=_stories, extra=st.text(min_size=1, max_size=10))
    def test_tampering_invalidates(self, event, story, extra):
        payload = {"meta": {"event": event}, "data": story}
        payload["meta"]["mac"] = compute_mac({"meta": {"event": event}, "data": story})
        payload["meta"]["event"] = event + extra
        assert verify_mac(payload) is False

    @settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(story=_stories)
    def test_signed_response_roundtrip(self, story):
        signed = append_mac(story)
        body = {k: v for k, v in signed.items() if k != "mac"}
        assert signed["mac"] == compute_mac(body)
