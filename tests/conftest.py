"""Shared fixtures: in-memory database, controllable clock, fake collaborators."""

import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_DSN", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("PUBLIC_BASE_URL", "https://portal.test")
os.environ.setdefault("EVENT_BUS_PROVIDER", "noop")

import uuid
import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from umhw.core.base import Base
from umhw.modules.grants import models as _grant_models  # noqa: F401
from umhw.modules.audit import models as _audit_models  # noqa: F401
from umhw.modules.events import outbox as _outbox  # noqa: F401
from umhw.modules.grants.service import GrantService
from umhw.platform.ports.directory import PrincipalRef

PATIENT_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
DOCTOR_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
OTHER_DOCTOR_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")
OTHER_PATIENT_ID = uuid.UUID("44444444-4444-4444-4444-444444444444")

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeDirectory:
    def __init__(self, entries: list[PrincipalRef]):
        self.entries = entries
        self.lookups: list[str] = []

    async def lookup_principal(self, identifier: str) -> PrincipalRef | None:
        self.lookups.append(identifier)
        for e in self.entries:
            if identifier in (e.username, e.email):
                return e
        return None


class FakeRecords:
    def __init__(self):
        self.calls: list[tuple[uuid.UUID, str]] = []

    async def get_scoped_records(self, subject_id: uuid.UUID, scope: str):
        self.calls.append((subject_id, scope))
        return [{"id": "rec-1", "subjectId": str(subject_id), "scope": scope}]


class FakeBus:
    def __init__(self):
        self.published: list[dict] = []

    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None:
        self.published.append({"topic": topic, "key": key, "value": value})


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def directory():
    return FakeDirectory([
        PrincipalRef(id=PATIENT_ID, role="patient", username="alice", email="alice@example.com"),
        PrincipalRef(id=OTHER_PATIENT_ID, role="patient", username="carol", email="carol@example.com"),
        PrincipalRef(id=DOCTOR_ID, role="doctor", username="drbob", email="bob@clinic.test"),
    ])


@pytest.fixture
def records():
    return FakeRecords()


@pytest.fixture
def make_service(directory, records, clock):
    tokens = iter(f"tok-{i:04d}-" + "x" * 32 for i in range(10_000))

    def _make(session) -> GrantService:
        return GrantService(session, directory=directory, records=records, clock=clock,
                            token_factory=lambda: next(tokens))
    return _make


@pytest.fixture
def service(session, make_service):
    return make_service(session)


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    # separate connections per session, so writers really contend
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'grants.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(eng, expire_on_commit=False, class_=AsyncSession)
    await eng.dispose()
