import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Float, Integer, Index, text
from umhw.core.base import Base, TimestampedMixin, UTCDateTime

class Grant(Base, TimestampedMixin):
    __tablename__ = "access_grant"
    __table_args__ = (
        Index("ix_access_grant_issuer_subject", "issuer_id", "subject_id"),
        # at most one stored-pending request per doctor and patient
        Index(
            "uq_access_grant_pending_request", "issuer_id", "subject_id", unique=True,
            postgresql_where=text("kind = 'request' AND status = 'pending'"),
            sqlite_where=text("kind = 'request' AND status = 'pending'"),
        ),
    )

    kind: Mapped[str] = mapped_column(String(16), index=True)  # request | qr | share
    subject_id: Mapped[uuid.UUID] = mapped_column(index=True)  # patient whose records are gated
    issuer_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)  # requesting doctor; None when self-issued
    scope: Mapped[str] = mapped_column(String(16))  # view|create|both (request), emergency|summary|all (qr), all (share)
    status: Mapped[str] = mapped_column(String(16))  # pending | approved | denied | revoked | expired | active | exhausted
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    requested_duration_hours: Mapped[float] = mapped_column(Float)
    approved_duration_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime())

    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # bearer secret for qr/share; kept after revocation for audit
    secret_token: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    shared_with_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
