import uuid
from typing import Literal
from sqlalchemy.ext.asyncio import AsyncSession

from umhw.core.base import utcnow
from umhw.core.paging import Page, PageParams, make_page
from umhw.modules.audit.service import RequestInfo
from umhw.modules.grants.common import Clock
from umhw.modules.grants.durations import Duration
from umhw.modules.grants.issuance import GrantIssuanceService
from umhw.modules.grants.policy import CAPABILITIES
from umhw.modules.grants.repository import GrantRepository
from umhw.modules.grants.resolution import GrantResolutionService
from umhw.modules.grants.response import GrantResponseService
from umhw.modules.grants.revocation import GrantRevocationService
from umhw.modules.grants.schemas import GrantRef, GrantView, ResolvedGrant
from umhw.platform.ports.directory import PrincipalDirectoryPort
from umhw.platform.ports.records import RecordsPort

class GrantService:
    """Single entry point the HTTP layer talks to."""

    def __init__(self, session: AsyncSession, *,
                 directory: PrincipalDirectoryPort | None = None,
                 records: RecordsPort | None = None,
                 clock: Clock | None = None,
                 token_factory=None):
        self.session = session
        self.clock = clock or utcnow
        self.repo = GrantRepository(session)
        self.issuance = GrantIssuanceService(session, directory=directory, clock=self.clock, token_factory=token_factory)
        self.resolution = GrantResolutionService(session, records=records, clock=self.clock)
        self.responses = GrantResponseService(session, clock=self.clock)
        self.revocation = GrantRevocationService(session, clock=self.clock)

    async def issue_grant(self, kind: str, subject_id: uuid.UUID, issuer_id: uuid.UUID | None = None,
                          scope: str | None = None, duration: Duration | None = None, reason: str | None = None,
                          **extra) -> GrantRef:
        return await self.issuance.issue(kind, subject_id, issuer_id, scope, duration, reason, **extra)

    async def request_access(self, issuer_id: uuid.UUID, patient_identifier: str, scope: str | None,
                             duration: Duration, reason: str | None = None) -> GrantRef:
        return await self.issuance.request_access(issuer_id, patient_identifier, scope, duration, reason)

    async def resolve_grant(self, reference: str | uuid.UUID, caller_id: uuid.UUID | None = None,
                            request: RequestInfo | None = None) -> ResolvedGrant:
        return await self.resolution.resolve(reference, caller_id, request=request)

    async def respond_to_grant(self, request_id: uuid.UUID, responder_id: uuid.UUID, action: str,
                               custom_duration_hours: Duration | None = None) -> GrantView:
        return await self.responses.respond(request_id, responder_id, action, custom_duration_hours)

    async def revoke_grant(self, reference: str | uuid.UUID, caller_id: uuid.UUID, kind: str | None = None) -> None:
        await self.revocation.revoke(reference, caller_id, kind=kind)

    async def withdraw_request(self, request_id: uuid.UUID, issuer_id: uuid.UUID) -> GrantView:
        return await self.revocation.withdraw(request_id, issuer_id)

    async def list_grants_for(self, principal_id: uuid.UUID, role: Literal["issuer", "subject"],
                              params: PageParams | None = None, kind: str | None = None) -> Page[GrantView]:
        if role not in ("issuer", "subject"):
            raise ValueError(f"role must be 'issuer' or 'subject', got {role!r}")
        params = params or PageParams()
        now = self.clock()
        items, total = await self.repo.list_for(principal_id, role=role, kind=kind, limit=params.limit, offset=params.offset)
        # the owner may copy their own links again; issuers never see them
        views = [self.revocation.view(g, now, include_url=role == "subject") for g in items]
        return make_page(views, total, params)

    async def has_access(self, doctor_id: uuid.UUID, patient_id: uuid.UUID, capability: str) -> bool:
        if capability not in CAPABILITIES:
            raise ValueError(f"Unknown capability {capability!r}")
        grant = await self.repo.find_approved_request(doctor_id, patient_id, self.clock(), CAPABILITIES[capability])
        return grant is not None
