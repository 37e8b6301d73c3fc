import uuid
from dataclasses import dataclass
from typing import Sequence
from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession
from umhw.modules.audit.models import AuditEvent

@dataclass(frozen=True)
class RequestInfo:
    client_ip: str | None = None
    user_agent: str | None = None

class AuditService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(self,
                  actor_user_id: uuid.UUID | None,
                  action: str,
                  resource_type: str,
                  resource_id: str,
                  purpose: str | None,
                  request: RequestInfo | None = None,
                  success: bool = True) -> AuditEvent:
        # caller owns the transaction
        ev = AuditEvent(
            actor_user_id=actor_user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            purpose=purpose,
            success=success,
            client_ip=request.client_ip if request else None,
            user_agent=request.user_agent[:256] if request and request.user_agent else None,
        )
        self.session.add(ev)
        await self.session.flush()
        return ev

    async def list_for_resource(self, resource_type: str, resource_id: str, limit: int = 50) -> Sequence[AuditEvent]:
        q = select(AuditEvent).where(
            AuditEvent.resource_type == resource_type,
            AuditEvent.resource_id == resource_id,
        ).order_by(desc(AuditEvent.occurred_at)).limit(limit)
        res = await self.session.execute(q)
        return res.scalars().all()
