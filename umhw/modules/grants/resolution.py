import uuid
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from umhw.core.errors import Expired, Forbidden, NotFound
from umhw.modules.audit.service import AuditService, RequestInfo
from umhw.modules.grants.common import Clock, GrantServiceBase, as_grant_id
from umhw.modules.grants.models import Grant
from umhw.modules.grants.policy import (
    ACTIVE, APPROVED, EXHAUSTED, KIND_QR, PUBLIC_KINDS, effective_status,
)
from umhw.modules.grants.schemas import ResolvedGrant
from umhw.platform.ports.records import RecordsPort
from umhw.platform.provider_registry import registry

log = logging.getLogger(__name__)

class GrantResolutionService(GrantServiceBase):
    """Reads a grant by id (issuer/subject) or by bearer token (anyone)."""

    def __init__(self, session: AsyncSession, *,
                 records: RecordsPort | None = None,
                 clock: Clock | None = None):
        super().__init__(session, clock=clock)
        self.records = records or registry.records()
        self.audit = AuditService(session)

    async def resolve(self, reference: str | uuid.UUID, caller_id: uuid.UUID | None = None,
                      request: RequestInfo | None = None) -> ResolvedGrant:
        grant_id = as_grant_id(reference)
        if grant_id is not None:
            if caller_id is None:
                raise Forbidden("Sign in to view this grant")
            return await self.resolve_by_id(grant_id, caller_id)
        return await self.resolve_public(str(reference), request=request)

    async def resolve_by_id(self, grant_id: uuid.UUID, caller_id: uuid.UUID, *, kind: str | None = None) -> ResolvedGrant:
        now = self.clock()
        grant = await self.repo.get(grant_id)
        if grant is None or (kind is not None and grant.kind != kind):
            raise NotFound("Grant not found")
        if caller_id not in (grant.issuer_id, grant.subject_id):
            raise Forbidden("You are not a party to this grant")
        view = self.view(grant, now, include_url=caller_id == grant.subject_id)
        records = None
        if view.status in (APPROVED, ACTIVE):
            records = await self.records.get_scoped_records(grant.subject_id, grant.scope)
        return ResolvedGrant(grant=view, records=records)

    async def resolve_public(self, token: str, *, kind: str | None = None,
                             request: RequestInfo | None = None) -> ResolvedGrant:
        """Bearer-token path for qr/share links.

        Anything other than an effectively active grant (expired, revoked,
        exhausted) is reported as Expired so the viewer can say "link expired"
        rather than "invalid link".
        """
        now = self.clock()
        grant = await self.repo.get_by_token(token)
        if grant is None or grant.kind not in PUBLIC_KINDS or (kind is not None and grant.kind != kind):
            await self._record(None, kind, request, success=False)
            raise NotFound("Invalid link")

        status = effective_status(grant.status, grant.expires_at, now)
        if status != ACTIVE:
            await self._record(grant, grant.kind, request, success=False)
            log.info(f"Public access refused for grant id={grant.id} status={status}")
            raise Expired()

        if grant.kind == KIND_QR:
            consumed = await self.repo.consume_use(grant.id, now)
            if consumed is None:
                # lost the race for the last use, or expired between read and update
                await self._record(grant, grant.kind, request, success=False)
                raise Expired()
            usage_count, max_uses = consumed
            if max_uses is not None and usage_count >= max_uses:
                await self.repo.mark_exhausted(grant.id)
                await self.emit("GRANT_EXHAUSTED", grant, status=EXHAUSTED, usage_count=usage_count)
                log.info(f"Grant id={grant.id} exhausted after {usage_count} uses")

        await self._record(grant, grant.kind, request, success=True)
        grant = await self.repo.get(grant.id)
        records = await self.records.get_scoped_records(grant.subject_id, grant.scope)
        return ResolvedGrant(grant=self.view(grant, now), records=records)

    async def _record(self, grant: Grant | None, kind: str | None, request: RequestInfo | None, *, success: bool):
        await self.audit.log(
            actor_user_id=None,
            action="resolve",
            resource_type="grant",
            resource_id=str(grant.id) if grant else "-",
            purpose=f"public_{kind}" if kind else "public",
            request=request,
            success=success,
        )
        await self.session.commit()
