import uuid
from typing import Sequence
from datetime import datetime
from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from umhw.modules.grants.models import Grant
from umhw.modules.grants.policy import (
    KIND_REQUEST, PENDING, APPROVED, ACTIVE, EXHAUSTED, EXPIRED,
)

class GrantRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **data) -> Grant:
        obj = Grant(**data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, grant_id: uuid.UUID) -> Grant | None:
        # always reload: respond/revoke must see the row as of this call
        q = select(Grant).where(Grant.id == grant_id).execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_by_token(self, token: str) -> Grant | None:
        q = select(Grant).where(Grant.secret_token == token).execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def find_pending_request(self, issuer_id: uuid.UUID, subject_id: uuid.UUID, now: datetime) -> Grant | None:
        q = select(Grant).where(
            Grant.kind == KIND_REQUEST,
            Grant.issuer_id == issuer_id,
            Grant.subject_id == subject_id,
            Grant.status == PENDING,
            Grant.expires_at >= now,
        ).limit(1)
        res = await self.session.execute(q)
        return res.scalars().first()

    async def expire_stale_pending(self, issuer_id: uuid.UUID, subject_id: uuid.UUID, now: datetime) -> int:
        """Store `expired` on this pair's lapsed pending requests so they leave the unique index."""
        q = (
            update(Grant)
            .where(
                Grant.kind == KIND_REQUEST,
                Grant.issuer_id == issuer_id,
                Grant.subject_id == subject_id,
                Grant.status == PENDING,
                Grant.expires_at < now,
            )
            .values(status=EXPIRED, version=Grant.version + 1)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(q)
        return res.rowcount

    async def find_approved_request(self, issuer_id: uuid.UUID, subject_id: uuid.UUID, now: datetime, scopes: frozenset[str]) -> Grant | None:
        q = select(Grant).where(
            Grant.kind == KIND_REQUEST,
            Grant.issuer_id == issuer_id,
            Grant.subject_id == subject_id,
            Grant.status == APPROVED,
            Grant.scope.in_(scopes),
            Grant.expires_at >= now,
        ).order_by(Grant.expires_at.desc()).limit(1)
        res = await self.session.execute(q)
        return res.scalars().first()

    async def list_for(self, principal_id: uuid.UUID, *, role: str, kind: str | None = None, limit: int = 10, offset: int = 0) -> tuple[Sequence[Grant], int]:
        owner_col = Grant.issuer_id if role == "issuer" else Grant.subject_id
        conditions = [owner_col == principal_id]
        if kind:
            conditions.append(Grant.kind == kind)
        total_q = select(func.count()).select_from(Grant).where(*conditions)
        total = (await self.session.execute(total_q)).scalar_one()
        q = select(Grant).where(*conditions).order_by(Grant.created_at.desc()).limit(limit).offset(offset)
        res = await self.session.execute(q)
        return res.scalars().all(), total

    async def transition(self, grant_id: uuid.UUID, *, from_statuses: frozenset[str] | set[str], live_at: datetime, **values) -> bool:
        """Conditionally move a grant out of a live status.

        Only matches while the stored status is in ``from_statuses`` and the
        grant has not expired at ``live_at``; returns False when another
        caller (or the clock) got there first.
        """
        q = (
            update(Grant)
            .where(
                Grant.id == grant_id,
                Grant.status.in_(from_statuses),
                Grant.expires_at >= live_at,
            )
            .values(version=Grant.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(q)
        return res.rowcount == 1

    async def consume_use(self, grant_id: uuid.UUID, now: datetime) -> tuple[int, int | None] | None:
        """Atomically count one resolution of an active token grant.

        Increment and the max-uses check are one UPDATE, so two concurrent
        resolutions can never both take the last use. Returns the new
        ``(usage_count, max_uses)`` or None when nothing was consumed.
        """
        q = (
            update(Grant)
            .where(
                Grant.id == grant_id,
                Grant.status == ACTIVE,
                Grant.expires_at >= now,
                or_(Grant.max_uses.is_(None), Grant.usage_count < Grant.max_uses),
            )
            .values(usage_count=Grant.usage_count + 1)
            .returning(Grant.usage_count, Grant.max_uses)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(q)
        row = res.first()
        if row is None:
            return None
        return row[0], row[1]

    async def mark_exhausted(self, grant_id: uuid.UUID) -> bool:
        q = (
            update(Grant)
            .where(Grant.id == grant_id, Grant.status == ACTIVE)
            .values(status=EXHAUSTED, version=Grant.version + 1)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(q)
        return res.rowcount == 1
