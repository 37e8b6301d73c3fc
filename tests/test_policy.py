"""Grant status and scope rules."""

import pytest
from datetime import datetime, timedelta, timezone

from umhw.core.errors import InvalidScope
from umhw.modules.grants.policy import (
    ACTIVE, APPROVED, DENIED, EXPIRED, EXHAUSTED, PENDING, REVOKED,
    KIND_QR, KIND_REQUEST, KIND_SHARE,
    CAPABILITIES, TERMINAL_STATUSES, effective_status, initial_status, validate_scope,
)

NOW = datetime(2026, 1, 1, 12, tzinfo=timezone.utc)


@pytest.mark.parametrize("stored", [PENDING, APPROVED, ACTIVE])
def test_live_statuses_expire_after_expires_at(stored):
    past = NOW - timedelta(seconds=1)
    assert effective_status(stored, past, NOW) == EXPIRED
    # exactly at expiry the grant is still live
    assert effective_status(stored, NOW, NOW) == stored


@pytest.mark.parametrize("stored", [DENIED, REVOKED, EXHAUSTED])
def test_terminal_statuses_are_kept(stored):
    assert effective_status(stored, NOW - timedelta(days=1), NOW) == stored
    assert stored in TERMINAL_STATUSES


def test_initial_status_by_kind():
    assert initial_status(KIND_REQUEST) == PENDING
    assert initial_status(KIND_QR) == ACTIVE
    assert initial_status(KIND_SHARE) == ACTIVE


def test_scope_vocabularies_are_not_shared():
    assert validate_scope(KIND_REQUEST, "both") == "both"
    assert validate_scope(KIND_QR, "emergency") == "emergency"
    with pytest.raises(InvalidScope):
        validate_scope(KIND_REQUEST, "emergency")
    with pytest.raises(InvalidScope):
        validate_scope(KIND_QR, "view")
    with pytest.raises(InvalidScope):
        validate_scope("letter", "view")


def test_default_scopes():
    assert validate_scope(KIND_REQUEST, None) == "both"
    assert validate_scope(KIND_QR, None) == "emergency"
    assert validate_scope(KIND_SHARE, None) == "all"


def test_capabilities():
    assert "view" in CAPABILITIES["view"] and "both" in CAPABILITIES["view"]
    assert "create" in CAPABILITIES["create"] and "both" in CAPABILITIES["create"]
    assert "create" not in CAPABILITIES["view"]
    assert "view" not in CAPABILITIES["create"]
