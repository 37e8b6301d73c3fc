import uuid
import secrets
from datetime import datetime
from typing import Callable
from sqlalchemy.ext.asyncio import AsyncSession

from umhw.core.base import utcnow
from umhw.core.config import settings
from umhw.modules.events.outbox import OutboxService
from umhw.modules.grants.models import Grant
from umhw.modules.grants.policy import KIND_QR, KIND_SHARE
from umhw.modules.grants.repository import GrantRepository
from umhw.modules.grants.schemas import GrantView

Clock = Callable[[], datetime]

_PUBLIC_ROUTES = {
    KIND_QR: lambda: settings.QR_PUBLIC_ROUTE,
    KIND_SHARE: lambda: settings.SHARE_PUBLIC_ROUTE,
}

def new_secret_token() -> str:
    return secrets.token_urlsafe(settings.SECRET_TOKEN_BYTES)

def public_url(kind: str, token: str) -> str:
    route = _PUBLIC_ROUTES[kind]().strip("/")
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/{route}/{token}"

def as_grant_id(reference: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(reference, uuid.UUID):
        return reference
    try:
        return uuid.UUID(reference)
    except (TypeError, ValueError):
        return None

class GrantServiceBase:
    def __init__(self, session: AsyncSession, *, clock: Clock | None = None):
        self.session = session
        self.repo = GrantRepository(session)
        self.outbox = OutboxService(session)
        self.clock = clock or utcnow

    def view(self, grant: Grant, now: datetime, *, include_url: bool = False) -> GrantView:
        url = None
        if include_url and grant.secret_token:
            url = public_url(grant.kind, grant.secret_token)
        return GrantView.from_grant(grant, now, url=url)

    async def emit(self, event_type: str, grant: Grant, **extra):
        # never put the secret token in an event
        payload = {
            "kind": grant.kind,
            "subject_id": str(grant.subject_id),
            "issuer_id": str(grant.issuer_id) if grant.issuer_id else None,
            "scope": grant.scope,
            "status": grant.status,
            "expires_at": grant.expires_at.isoformat(),
        }
        payload.update(extra)
        await self.outbox.enqueue(event_type, "grant", grant.id, payload)
