"""Role changes from the admin screen, including demoting yourself."""

import json
import uuid

import httpx
import pytest
from jose import jwt

from umhw.client.api import AdminClient, GrantsClient
from umhw.client.session import ApiError, SessionState, SessionTokenCoordinator

ME = str(uuid.uuid4())
SOMEONE = str(uuid.uuid4())


def backend(seen: list[str], *, logout_status: int = 200, profile_status: int = 200):
    def handle(request: httpx.Request) -> httpx.Response:
        seen.append(f"{request.method} {request.url.path}")
        if request.url.path == "/csrf-token":
            return httpx.Response(200, json={"csrfToken": "c1"})
        if request.url.path == "/profile/profile":
            return httpx.Response(profile_status, json={"user": {"id": ME, "role": "admin"}})
        if request.url.path == "/auth/logout":
            return httpx.Response(logout_status, json={"message": "bye"})
        return httpx.Response(200, json={"ok": True})
    return handle


def make(seen, expired, token="a1", **kw) -> SessionTokenCoordinator:
    def on_expired():
        expired.append(True)
    return SessionTokenCoordinator("https://api.test", state=SessionState(access_token=token),
                                   transport=httpx.MockTransport(backend(seen, **kw)),
                                   on_session_expired=on_expired)


async def test_demoting_yourself_logs_out():
    seen, expired = [], []
    session = make(seen, expired)
    async with session:
        assert await AdminClient(session).update_role(ME, "doctor") is True

    assert seen == [
        "GET /csrf-token",
        f"PUT /admin/users/{ME}/role",
        "GET /profile/profile",
        "POST /auth/logout",
    ]
    assert session.state.access_token is None
    assert session.state.csrf_token is None
    assert expired == [True]


@pytest.mark.parametrize("user_id,role", [(SOMEONE, "patient"), (ME, "admin")])
async def test_other_role_changes_keep_the_session(user_id, role):
    seen, expired = [], []
    session = make(seen, expired)
    async with session:
        assert await AdminClient(session).update_role(user_id, role) is False

    assert "POST /auth/logout" not in seen
    assert session.state.access_token == "a1"
    assert expired == []


async def test_session_is_cleared_even_if_logout_fails():
    seen, expired = [], []
    session = make(seen, expired, logout_status=500)
    async with session:
        with pytest.raises(ApiError):
            await AdminClient(session).update_role(ME, "patient")

    assert session.state.access_token is None
    assert expired == [True]


async def test_grants_client_request_body():
    bodies = []

    def handle(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/csrf-token":
            return httpx.Response(200, json={"csrfToken": "c1"})
        bodies.append((request.method, request.url.path, request.content))
        return httpx.Response(201, json={"id": "x"})

    async with SessionTokenCoordinator("https://api.test", state=SessionState(access_token="a1"),
                                       transport=httpx.MockTransport(handle)) as session:
        client = GrantsClient(session)
        await client.request_access("  alice ", reason="   ")
        await client.generate_qr(1, max_uses=2)
        await client.create_share("30d")

    payloads = [(m, p, json.loads(c)) for m, p, c in bodies]
    assert payloads[0] == ("POST", "/access-requests", {
        "patientIdentifier": "alice", "requestType": "both", "reason": "Medical consultation", "durationHours": 48,
    })
    assert payloads[1] == ("POST", "/qr/generate", {"durationHours": 1, "accessScope": "emergency", "maxUses": 2})
    assert payloads[2] == ("POST", "/share", {"duration": "30d"})


async def test_identity_comes_from_the_token_before_the_change():
    seen, expired = [], []
    token = jwt.encode({"sub": ME, "role": "admin"}, "irrelevant", algorithm="HS256")
    session = make(seen, expired, token=token, profile_status=502)
    async with session:
        assert await AdminClient(session).update_role(ME, "doctor") is True

    assert "GET /profile/profile" not in seen
    assert seen[-1] == "POST /auth/logout"
    assert session.state.access_token is None
    assert expired == [True]


async def test_token_identity_spares_other_users():
    seen, expired = [], []
    token = jwt.encode({"sub": ME, "role": "admin"}, "irrelevant", algorithm="HS256")
    session = make(seen, expired, token=token)
    async with session:
        assert await AdminClient(session).update_role(SOMEONE, "patient") is False

    assert session.state.access_token == token
    assert expired == []


async def test_unconfirmed_identity_after_self_change_ends_session():
    seen, expired = [], []
    session = make(seen, expired, profile_status=502)
    async with session:
        assert await AdminClient(session).update_role(ME, "doctor") is True

    assert "POST /auth/logout" in seen
    assert session.state.access_token is None
    assert expired == [True]
