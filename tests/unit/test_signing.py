"""
Tests for signed OAuth state values.
"""

import time

import pytest

from localedge.config import settings
from localedge.security.signing import SigningError, sign_state, verify_state


@pytest.fixture(autouse=True)
def signing_secret(monkeypatch):
    monkeypatch.setattr(settings, "STATE_SIGNING_SECRET", "test-signing-secret-0123456789")


def test_round_trip_returns_payload():
    state = sign_state({"business_id": "biz-1"}, namespace="calendar")

    assert verify_state(state, namespace="calendar") == {"business_id": "biz-1"}


def test_namespace_is_part_of_signature():
    state = sign_state({"business_id": "biz-1"}, namespace="calendar")

    with pytest.raises(SigningError):
        verify_state(state, namespace="other")


def test_tampered_body_is_rejected():
    state = sign_state({"business_id": "biz-1"}, namespace="calendar")
    body, _, digest = state.partition(".")
    forged = sign_state({"business_id": "biz-2"}, namespace="calendar").partition(".")[0]

    with pytest.raises(SigningError):
        verify_state(f"{forged}.{digest}", namespace="calendar")
    assert body != forged


def test_expired_state_is_rejected(monkeypatch):
    state = sign_state({"business_id": "biz-1"}, namespace="calendar", ttl_s=60)
    later = time.time() + 120
    monkeypatch.setattr("localedge.security.signing.time.time", lambda: later)

    with pytest.raises(SigningError, match="expired"):
        verify_state(state, namespace="calendar")


@pytest.mark.parametrize("state", ["", "no-dot", ".digest-only"])
def test_malformed_state_is_rejected(state):
    with pytest.raises(SigningError):
        verify_state(state, namespace="calendar")


def test_short_secret_refused(monkeypatch):
    monkeypatch.setattr(settings, "STATE_SIGNING_SECRET", "short")

    with pytest.raises(SigningError, match="too short"):
        sign_state({}, namespace="calendar")


def test_missing_secret_refused(monkeypatch):
    monkeypatch.setattr(settings, "STATE_SIGNING_SECRET", None)

    with pytest.raises(SigningError, match="not configured"):
        sign_state({}, namespace="calendar")
