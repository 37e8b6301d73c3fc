import uuid
import logging
from datetime import timedelta

from umhw.core.errors import Forbidden, InvalidAction, InvalidState, NotFound
from umhw.modules.grants.common import GrantServiceBase
from umhw.modules.grants.durations import Duration, parse_duration
from umhw.modules.grants.policy import APPROVED, DENIED, KIND_REQUEST, PENDING, effective_status
from umhw.modules.grants.schemas import GrantView

log = logging.getLogger(__name__)

ACTIONS = ("approve", "deny")

class GrantResponseService(GrantServiceBase):
    async def respond(self, request_id: uuid.UUID, responder_id: uuid.UUID, action: str,
                      custom_duration_hours: Duration | None = None) -> GrantView:
        # validation first, nothing is written on bad input
        if action not in ACTIONS:
            raise InvalidAction(f"Invalid action {action!r}; expected 'approve' or 'deny'")
        custom_hours = None
        if action == "approve" and custom_duration_hours is not None:
            custom_hours = parse_duration(custom_duration_hours)

        now = self.clock()
        grant = await self.repo.get(request_id)
        if grant is None or grant.kind != KIND_REQUEST:
            raise NotFound("Access request not found")
        if responder_id != grant.subject_id:
            raise Forbidden("Only the patient can respond to this request")
        status = effective_status(grant.status, grant.expires_at, now)
        if status != PENDING:
            raise InvalidState(f"This request is already {status}")

        if action == "deny":
            values = {"status": DENIED, "responded_at": now}
        else:
            # the access window starts at approval, not at the original request
            hours = custom_hours if custom_hours is not None else grant.requested_duration_hours
            values = {
                "status": APPROVED,
                "responded_at": now,
                "approved_duration_hours": hours,
                "expires_at": now + timedelta(hours=hours),
            }

        moved = await self.repo.transition(grant.id, from_statuses={PENDING}, live_at=now, **values)
        if not moved:
            await self.session.rollback()
            current = await self.repo.get(grant.id)
            raise InvalidState(f"This request is already {effective_status(current.status, current.expires_at, now)}")

        grant = await self.repo.get(grant.id)
        await self.emit("GRANT_APPROVED" if action == "approve" else "GRANT_DENIED", grant)
        await self.session.commit()
        log.info(f"Access request id={grant.id} {grant.status} by subject={responder_id}")
        return self.view(grant, now)
