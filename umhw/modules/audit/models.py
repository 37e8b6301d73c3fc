import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String
from umhw.core.base import Base, TimestampedMixin, UTCDateTime, utcnow

class AuditEvent(Base, TimestampedMixin):
    # who; None for anonymous public-link access
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    # What happened
    action: Mapped[str] = mapped_column(String(24))  # issue | resolve | respond | revoke | withdraw
    resource_type: Mapped[str] = mapped_column(String(48))  # grant
    resource_id: Mapped[str] = mapped_column(String(64))  # grant id, or "-" when the token matched nothing
    purpose: Mapped[str | None] = mapped_column(String(64), nullable=True)  # e.g. public_qr | public_share
    success: Mapped[bool] = mapped_column(default=True)
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(256), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
