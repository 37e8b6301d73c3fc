"""Issuing access requests, emergency QR codes and share links."""

import asyncio
import pytest
from datetime import timedelta

from umhw.core.errors import DuplicateRequest, Forbidden, InvalidDuration, InvalidScope, NotFound
from umhw.modules.grants.models import Grant
from umhw.modules.grants.policy import KIND_QR, KIND_REQUEST, KIND_SHARE
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from conftest import DOCTOR_ID, OTHER_DOCTOR_ID, PATIENT_ID, T0


async def _count(session) -> int:
    return (await session.execute(select(func.count()).select_from(Grant))).scalar_one()


async def test_request_access_looks_up_patient_and_starts_pending(service, directory):
    ref = await service.request_access(DOCTOR_ID, "  alice@example.com ", "both", 48, "Follow-up")

    assert directory.lookups == ["alice@example.com"]
    assert ref.kind == KIND_REQUEST
    assert ref.status == "pending"
    assert ref.url is None
    assert ref.expires_at == T0 + timedelta(hours=48)
    assert ref.duration_label == "48 Hours (2 Days)"
    assert ref.message

    view = (await service.resolve_grant(ref.id, DOCTOR_ID)).grant
    assert view.subject_id == PATIENT_ID
    assert view.issuer_id == DOCTOR_ID
    assert view.reason == "Follow-up"
    assert view.approved_duration_hours is None
    assert view.responded_at is None


async def test_request_access_default_reason(service):
    ref = await service.request_access(DOCTOR_ID, "alice", "view", 24)
    view = (await service.resolve_grant(ref.id, DOCTOR_ID)).grant
    assert view.reason == "Medical consultation"


async def test_unknown_or_non_patient_identifier_is_not_found(service):
    with pytest.raises(NotFound):
        await service.request_access(DOCTOR_ID, "nobody", "both", 48)
    with pytest.raises(NotFound):
        await service.request_access(OTHER_DOCTOR_ID, "drbob", "both", 48)


async def test_validation_happens_before_lookup_or_write(service, session, directory):
    with pytest.raises(InvalidScope):
        await service.request_access(DOCTOR_ID, "alice", "emergency", 48)
    with pytest.raises(InvalidDuration):
        await service.request_access(DOCTOR_ID, "alice", "both", 5)
    assert directory.lookups == []
    assert await _count(session) == 0


async def test_duplicate_pending_request_is_rejected(service, session):
    await service.request_access(DOCTOR_ID, "alice", "both", 48)
    with pytest.raises(DuplicateRequest):
        await service.request_access(DOCTOR_ID, "alice@example.com", "view", 24)
    assert await _count(session) == 1


async def test_other_doctor_may_still_request(service):
    await service.request_access(DOCTOR_ID, "alice", "both", 48)
    ref = await service.request_access(OTHER_DOCTOR_ID, "alice", "both", 48)
    assert ref.status == "pending"


async def test_expired_pending_request_does_not_block_a_new_one(service, clock):
    first = await service.request_access(DOCTOR_ID, "alice", "both", 1)
    clock.advance(hours=1, minutes=1)
    ref = await service.request_access(DOCTOR_ID, "alice", "both", 1)
    assert ref.status == "pending"
    assert (await service.repo.get(first.id)).status == "expired"


async def test_store_holds_one_pending_request_per_pair(service, session):
    ref = await service.request_access(DOCTOR_ID, "alice", "both", 48)
    with pytest.raises(IntegrityError):
        await service.repo.create(
            kind=KIND_REQUEST, subject_id=PATIENT_ID, issuer_id=DOCTOR_ID, scope="view", status="pending",
            reason="again", requested_duration_hours=24, expires_at=T0 + timedelta(hours=24),
            usage_count=0, created_at=T0, updated_at=T0,
        )
    await session.rollback()
    assert await _count(session) == 1

    await service.respond_to_grant(ref.id, PATIENT_ID, "deny")
    again = await service.request_access(DOCTOR_ID, "alice", "both", 48)
    assert again.status == "pending"


async def test_insert_conflict_reports_duplicate(service, session, monkeypatch):
    await service.request_access(DOCTOR_ID, "alice", "both", 48)

    async def nothing_pending(*args):
        return None

    monkeypatch.setattr(service.issuance.repo, "find_pending_request", nothing_pending)
    with pytest.raises(DuplicateRequest):
        await service.request_access(DOCTOR_ID, "alice", "view", 24)
    assert await _count(session) == 1


async def test_concurrent_requests_leave_one_pending(file_session_factory, make_service):
    async def attempt():
        async with file_session_factory() as s:
            try:
                return await make_service(s).request_access(DOCTOR_ID, "alice", "both", 48)
            except DuplicateRequest as e:
                return e

    results = await asyncio.gather(attempt(), attempt())
    assert sum(isinstance(r, DuplicateRequest) for r in results) == 1

    async with file_session_factory() as s:
        assert await _count(s) == 1


async def test_cannot_request_own_records(service):
    with pytest.raises(Forbidden):
        await service.issue_grant(KIND_REQUEST, DOCTOR_ID, DOCTOR_ID, "view", 24)


async def test_request_needs_an_issuer(service):
    with pytest.raises(Forbidden):
        await service.issue_grant(KIND_REQUEST, PATIENT_ID, None, "view", 24)


async def test_qr_grant_is_active_with_public_url(service):
    ref = await service.issue_grant(KIND_QR, PATIENT_ID, None, "emergency", 1, max_uses=3)

    assert ref.status == "active"
    assert ref.scope == "emergency"
    assert ref.expires_at == T0 + timedelta(hours=1)
    assert ref.url.startswith("https://portal.test/emergency/tok-")

    view = (await service.resolve_grant(ref.id, PATIENT_ID)).grant
    assert view.issuer_id is None
    assert view.max_uses == 3
    assert view.usage_count == 0
    assert view.url == ref.url


async def test_share_grant_accepts_relative_duration(service):
    ref = await service.issue_grant(KIND_SHARE, PATIENT_ID, None, None, "7d", shared_with_email="dr@clinic.org")

    assert ref.scope == "all"
    assert ref.duration_hours == 168
    assert ref.duration_label == "1 Week"
    assert ref.url.startswith("https://portal.test/shared/tok-")
    view = (await service.resolve_grant(ref.id, PATIENT_ID)).grant
    assert view.shared_with_email == "dr@clinic.org"


async def test_public_grant_tokens_are_unique(service):
    a = await service.issue_grant(KIND_SHARE, PATIENT_ID, None, None, "1d")
    b = await service.issue_grant(KIND_SHARE, PATIENT_ID, None, None, "1d")
    assert a.url != b.url


async def test_someone_else_cannot_issue_a_patients_qr(service):
    with pytest.raises(Forbidden):
        await service.issue_grant(KIND_QR, PATIENT_ID, DOCTOR_ID, "all", 24)


async def test_kind_specific_scope_checks(service):
    with pytest.raises(InvalidScope):
        await service.issue_grant(KIND_QR, PATIENT_ID, None, "both", 24)
    with pytest.raises(InvalidScope):
        await service.issue_grant(KIND_SHARE, PATIENT_ID, None, "summary", "7d")
    with pytest.raises(InvalidScope):
        await service.issue_grant("letter", PATIENT_ID, None, "all", 24)


async def test_default_token_factory_is_url_safe(session, directory, records, clock):
    from umhw.modules.grants.service import GrantService

    svc = GrantService(session, directory=directory, records=records, clock=clock)
    ref = await svc.issue_grant(KIND_QR, PATIENT_ID, None, "summary", 24)
    token = ref.url.rsplit("/", 1)[1]
    assert len(token) >= 40
    assert "/" not in token and "+" not in token
