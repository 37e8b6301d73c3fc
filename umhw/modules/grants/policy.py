"""
Status and scope rules shared by every grant kind.

A grant is a tagged variant: ``kind`` decides the scope vocabulary and how the
grant is addressed (by id for requests, by secret token for qr/share), while
expiry and terminal-state rules are the same for all of them.
"""
from datetime import datetime

from umhw.core.errors import InvalidScope

KIND_REQUEST = "request"
KIND_QR = "qr"
KIND_SHARE = "share"
KINDS = (KIND_REQUEST, KIND_QR, KIND_SHARE)
PUBLIC_KINDS = (KIND_QR, KIND_SHARE)

PENDING = "pending"
APPROVED = "approved"
DENIED = "denied"
REVOKED = "revoked"
EXPIRED = "expired"
ACTIVE = "active"
EXHAUSTED = "exhausted"

# stored statuses that time can still turn into "expired"
LIVE_STATUSES = frozenset({PENDING, APPROVED, ACTIVE})
TERMINAL_STATUSES = frozenset({DENIED, REVOKED, EXPIRED, EXHAUSTED})

SCOPES: dict[str, frozenset[str]] = {
    KIND_REQUEST: frozenset({"view", "create", "both"}),
    KIND_QR: frozenset({"emergency", "summary", "all"}),
    KIND_SHARE: frozenset({"all"}),
}

DEFAULT_SCOPES = {KIND_REQUEST: "both", KIND_QR: "emergency", KIND_SHARE: "all"}

# capability -> request scopes that grant it
CAPABILITIES = {
    "view": frozenset({"view", "both"}),
    "create": frozenset({"create", "both"}),
}


def initial_status(kind: str) -> str:
    return PENDING if kind == KIND_REQUEST else ACTIVE


def validate_scope(kind: str, scope: str | None) -> str:
    if kind not in SCOPES:
        raise InvalidScope(f"Unknown grant kind {kind!r}")
    if scope is None:
        return DEFAULT_SCOPES[kind]
    if scope not in SCOPES[kind]:
        allowed = ", ".join(sorted(SCOPES[kind]))
        raise InvalidScope(f"Scope {scope!r} is not valid for {kind} grants; expected one of {allowed}")
    return scope


def effective_status(status: str, expires_at: datetime, now: datetime) -> str:
    """Stored status with expiry applied at read time."""
    if status in LIVE_STATUSES and now > expires_at:
        return EXPIRED
    return status

