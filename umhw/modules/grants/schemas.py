import uuid
from datetime import datetime
from typing import Any
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from umhw.modules.grants.durations import (
    DEFAULT_REQUEST_HOURS, DEFAULT_QR_HOURS, DEFAULT_SHARE_DURATION, duration_label,
)
from umhw.modules.grants.models import Grant
from umhw.modules.grants.policy import effective_status

class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, from_attributes=True)

# ---- Inputs ----

class AccessRequestCreate(_CamelModel):
    patient_identifier: str = Field(..., min_length=1, max_length=320)  # username or email
    request_type: str = "both"
    reason: str | None = Field(default=None, max_length=500)
    duration_hours: float | str = DEFAULT_REQUEST_HOURS

class AccessRequestRespond(_CamelModel):
    action: str
    custom_duration_hours: float | str | None = None

class QrGenerate(_CamelModel):
    duration_hours: float | str = DEFAULT_QR_HOURS
    access_scope: str = "emergency"
    max_uses: int | None = Field(default=None, ge=1)

class ShareCreate(_CamelModel):
    duration: float | str = DEFAULT_SHARE_DURATION
    shared_with_email: EmailStr | None = None

# ---- Outputs ----

class GrantView(_CamelModel):
    id: uuid.UUID
    kind: str
    subject_id: uuid.UUID
    issuer_id: uuid.UUID | None
    scope: str
    status: str
    reason: str | None = None
    requested_duration_hours: float
    approved_duration_hours: float | None = None
    duration_label: str
    created_at: datetime
    responded_at: datetime | None = None
    expires_at: datetime
    usage_count: int = 0
    max_uses: int | None = None
    shared_with_email: str | None = None
    url: str | None = None

    @classmethod
    def from_grant(cls, grant: Grant, now: datetime, url: str | None = None) -> "GrantView":
        hours = grant.approved_duration_hours or grant.requested_duration_hours
        return cls(
            id=grant.id,
            kind=grant.kind,
            subject_id=grant.subject_id,
            issuer_id=grant.issuer_id,
            scope=grant.scope,
            status=effective_status(grant.status, grant.expires_at, now),
            reason=grant.reason,
            requested_duration_hours=grant.requested_duration_hours,
            approved_duration_hours=grant.approved_duration_hours,
            duration_label=duration_label(hours),
            created_at=grant.created_at,
            responded_at=grant.responded_at,
            expires_at=grant.expires_at,
            usage_count=grant.usage_count or 0,
            max_uses=grant.max_uses,
            shared_with_email=grant.shared_with_email,
            url=url,
        )

class GrantRef(_CamelModel):
    """What the issuer gets back: the id for requests, the public URL for qr/share."""
    id: uuid.UUID
    kind: str
    message: str
    scope: str
    status: str
    expires_at: datetime
    duration_hours: float
    duration_label: str
    url: str | None = None

class ResolvedGrant(_CamelModel):
    grant: GrantView
    records: list[dict[str, Any]] | None = None
