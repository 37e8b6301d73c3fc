import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from umhw.core.db import get_session
from umhw.core.errors import NotFound, Forbidden
from umhw.core.security import get_principal, Principal
from umhw.modules.audit.service import AuditService
from umhw.modules.grants.repository import GrantRepository

router = APIRouter()

@router.get("/grants/{grant_id}/access-log")
async def grant_access_log(
    grant_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
    limit: int = Query(50, ge=1, le=200),
):
    grant = await GrantRepository(session).get(grant_id)
    if not grant:
        raise NotFound("Grant not found")
    if grant.subject_id != principal.user_id:
        raise Forbidden("Only the patient can view who accessed this grant")
    rows = await AuditService(session).list_for_resource("grant", str(grant_id), limit=limit)
    # Return raw dicts for simplicity
    return [
        {
            "id": row.id,
            "actorUserId": row.actor_user_id,
            "action": row.action,
            "purpose": row.purpose,
            "success": row.success,
            "clientIp": row.client_ip,
            "occurredAt": row.occurred_at,
        }
        for row in rows
    ]
