import uuid
import logging

from umhw.core.errors import Forbidden, InvalidState, NotFound
from umhw.modules.grants.common import GrantServiceBase, as_grant_id
from umhw.modules.grants.models import Grant
from umhw.modules.grants.policy import (
    APPROVED, KIND_REQUEST, LIVE_STATUSES, PENDING, REVOKED, effective_status,
)
from umhw.modules.grants.schemas import GrantView

log = logging.getLogger(__name__)

class GrantRevocationService(GrantServiceBase):
    async def revoke(self, reference: str | uuid.UUID, caller_id: uuid.UUID, *, kind: str | None = None) -> GrantView:
        """End a grant early. Only the subject may revoke; repeats are no-ops."""
        grant = await self._load(reference)
        if kind is not None and grant.kind != kind:
            raise NotFound("Grant not found")
        if caller_id != grant.subject_id:
            raise Forbidden("Only the patient can revoke this grant")

        now = self.clock()
        moved = await self.repo.transition(
            grant.id, from_statuses=LIVE_STATUSES, live_at=now, status=REVOKED, revoked_at=now,
        )
        if moved:
            grant = await self.repo.get(grant.id)
            await self.emit("GRANT_REVOKED", grant, revoked_by=str(caller_id))
            await self.session.commit()
            log.info(f"Revoked {grant.kind} grant id={grant.id}")
        else:
            # already denied/revoked/expired/exhausted
            grant = await self.repo.get(grant.id)
        return self.view(grant, now, include_url=True)

    async def withdraw(self, request_id: uuid.UUID, issuer_id: uuid.UUID) -> GrantView:
        """Doctor cancels their own request while it is still pending."""
        grant = await self._load(request_id)
        if grant.kind != KIND_REQUEST:
            raise NotFound("Access request not found")
        if issuer_id != grant.issuer_id:
            raise Forbidden("Only the requesting doctor can cancel this request")

        now = self.clock()
        moved = await self.repo.transition(
            grant.id, from_statuses={PENDING}, live_at=now, status=REVOKED, revoked_at=now,
        )
        grant = await self.repo.get(grant.id)
        if moved:
            await self.emit("GRANT_REVOKED", grant, revoked_by=str(issuer_id))
            await self.session.commit()
            log.info(f"Access request id={grant.id} withdrawn by issuer")
        elif effective_status(grant.status, grant.expires_at, now) == APPROVED:
            raise InvalidState("Approved access can only be revoked by the patient")
        return self.view(grant, now)

    async def _load(self, reference: str | uuid.UUID) -> Grant:
        grant_id = as_grant_id(reference)
        if grant_id is not None:
            grant = await self.repo.get(grant_id)
        else:
            grant = await self.repo.get_by_token(str(reference))
        if grant is None:
            raise NotFound("Grant not found")
        return grant
