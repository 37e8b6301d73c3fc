import uuid
import logging
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from umhw.core.errors import DuplicateRequest, Forbidden, InvalidScope, NotFound
from umhw.modules.grants.common import Clock, GrantServiceBase, new_secret_token, public_url
from umhw.modules.grants.durations import (
    Duration, DEFAULT_REQUEST_HOURS, DEFAULT_QR_HOURS, DEFAULT_SHARE_DURATION,
    compute_expiry, duration_label, parse_duration,
)
from umhw.modules.grants.policy import (
    KINDS, KIND_REQUEST, KIND_QR, KIND_SHARE, PUBLIC_KINDS, initial_status, validate_scope,
)
from umhw.modules.grants.schemas import GrantRef
from umhw.platform.ports.directory import PrincipalDirectoryPort
from umhw.platform.provider_registry import registry

log = logging.getLogger(__name__)

DEFAULT_REASON = "Medical consultation"

_DEFAULT_DURATIONS = {
    KIND_REQUEST: DEFAULT_REQUEST_HOURS,
    KIND_QR: DEFAULT_QR_HOURS,
    KIND_SHARE: DEFAULT_SHARE_DURATION,
}

_ISSUED_MESSAGES = {
    KIND_REQUEST: "Access request sent to patient",
    KIND_QR: "Emergency QR code generated",
    KIND_SHARE: "Share link generated",
}

class GrantIssuanceService(GrantServiceBase):
    def __init__(self, session: AsyncSession, *,
                 directory: PrincipalDirectoryPort | None = None,
                 clock: Clock | None = None,
                 token_factory=None):
        super().__init__(session, clock=clock)
        self.directory = directory or registry.directory()
        self.token_factory = token_factory or new_secret_token

    async def request_access(self, issuer_id: uuid.UUID, patient_identifier: str,
                             scope: str | None = None, duration: Duration = DEFAULT_REQUEST_HOURS,
                             reason: str | None = None) -> GrantRef:
        """Doctor-side entry point: find the patient by username or email, then issue."""
        validate_scope(KIND_REQUEST, scope)
        parse_duration(duration)
        target = await self.directory.lookup_principal(patient_identifier.strip())
        if target is None or target.role != "patient":
            raise NotFound("Patient not found")
        return await self.issue(KIND_REQUEST, target.id, issuer_id, scope, duration, reason)

    async def issue(self, kind: str, subject_id: uuid.UUID, issuer_id: uuid.UUID | None = None,
                    scope: str | None = None, duration: Duration | None = None, reason: str | None = None,
                    *, max_uses: int | None = None, shared_with_email: str | None = None) -> GrantRef:
        if kind not in KINDS:
            raise InvalidScope(f"Unknown grant kind {kind!r}")
        scope = validate_scope(kind, scope)
        if duration is None:
            duration = _DEFAULT_DURATIONS[kind]
        hours = parse_duration(duration)

        if kind == KIND_REQUEST:
            if issuer_id is None:
                raise Forbidden("An access request must name the requesting doctor")
            if issuer_id == subject_id:
                raise Forbidden("You cannot request access to your own records")
        elif issuer_id is not None and issuer_id != subject_id:
            raise Forbidden("Only the patient can create emergency or share links")

        now = self.clock()
        if kind == KIND_REQUEST:
            await self.repo.expire_stale_pending(issuer_id, subject_id, now)
            if await self.repo.find_pending_request(issuer_id, subject_id, now):
                await self.session.rollback()
                raise DuplicateRequest()

        token = self.token_factory() if kind in PUBLIC_KINDS else None
        try:
            grant = await self.repo.create(
                kind=kind,
                subject_id=subject_id,
                issuer_id=issuer_id if kind == KIND_REQUEST else None,
                scope=scope,
                status=initial_status(kind),
                reason=(reason or DEFAULT_REASON) if kind == KIND_REQUEST else None,
                requested_duration_hours=hours,
                expires_at=compute_expiry(now, duration),
                usage_count=0,
                max_uses=max_uses if kind == KIND_QR else None,
                secret_token=token,
                shared_with_email=shared_with_email if kind == KIND_SHARE else None,
                created_at=now,
                updated_at=now,
            )
        except IntegrityError:
            await self.session.rollback()
            if kind == KIND_REQUEST:
                # another request for the same pair committed first
                raise DuplicateRequest()
            raise
        await self.emit("GRANT_ISSUED", grant)
        await self.session.commit()
        log.info(f"Issued {kind} grant id={grant.id} subject={subject_id} scope={scope} expires_at={grant.expires_at.isoformat()}")

        return GrantRef(
            id=grant.id,
            kind=kind,
            message=_ISSUED_MESSAGES[kind],
            scope=scope,
            status=grant.status,
            expires_at=grant.expires_at,
            duration_hours=hours,
            duration_label=duration_label(hours),
            url=public_url(kind, token) if token else None,
        )
