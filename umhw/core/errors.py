"""
Error taxonomy shared by the grant services, the HTTP layer and the client.

Every error carries a stable ``code`` that goes over the wire, so the client
can raise the same class the server raised.
"""
from typing import Any, Sequence


class GrantError(Exception):
    """Base for every failure the grant core reports to its callers."""

    code: str = "grant_error"
    status_code: int = 400
    default_message: str = "Request could not be completed"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidDuration(GrantError):
    code = "invalid_duration"
    status_code = 422
    default_message = "Duration is not one of the allowed values"


class InvalidScope(GrantError):
    code = "invalid_scope"
    status_code = 422
    default_message = "Scope is not valid for this grant kind"


class InvalidAction(GrantError):
    code = "invalid_action"
    status_code = 422
    default_message = "Action must be 'approve' or 'deny'"


class DuplicateRequest(GrantError):
    code = "duplicate_request"
    status_code = 409
    default_message = "You already have a pending request for this patient"


class NotFound(GrantError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class Forbidden(GrantError):
    code = "forbidden"
    status_code = 403
    default_message = "You are not allowed to perform this action"


class Expired(GrantError):
    code = "expired"
    status_code = 410
    default_message = "This link has expired or is no longer valid"


class InvalidState(GrantError):
    code = "invalid_state"
    status_code = 409
    default_message = "This request has already been handled"


class InvalidInput(GrantError):
    code = "invalid_input"
    status_code = 422
    default_message = "Request is not valid"


class Unauthorized(GrantError):
    code = "unauthorized"
    status_code = 401
    default_message = "Authentication required"


class SessionExpired(GrantError):
    code = "session_expired"
    status_code = 401
    default_message = "Your session has expired, please sign in again"


class CsrfRejected(GrantError):
    code = "csrf_rejected"
    status_code = 403
    default_message = "Invalid CSRF token"


ERRORS_BY_CODE: dict[str, type[GrantError]] = {
    cls.code: cls
    for cls in (
        InvalidDuration, InvalidScope, InvalidAction, InvalidInput, DuplicateRequest, NotFound,
        Forbidden, Expired, InvalidState, Unauthorized, SessionExpired, CsrfRejected,
    )
}

# request fields whose malformed values belong to a specific error kind
_FIELD_ERRORS: dict[str, type[GrantError]] = {
    "durationHours": InvalidDuration,
    "customDurationHours": InvalidDuration,
    "duration": InvalidDuration,
    "accessScope": InvalidScope,
    "requestType": InvalidScope,
    "action": InvalidAction,
}


def from_validation_errors(errors: Sequence[dict[str, Any]]) -> GrantError:
    """Fold pydantic/FastAPI validation errors into one GrantError."""
    fields = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        fields.append(".".join(loc) or "body")
    details = {"fields": fields}
    for err in errors:
        for part in err.get("loc", ()):
            cls = _FIELD_ERRORS.get(part)
            if cls is not None:
                return cls(details=details)
    message = errors[0].get("msg") if errors else None
    return InvalidInput(message, details=details)
