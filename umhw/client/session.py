"""
Session Token Coordinator.

Wraps an ``httpx.AsyncClient`` so that every call carries the bearer access
token and, for state-changing methods, the anti-CSRF token. Recovers from a
rejected CSRF token or an expired access token with one retry per call, and
collapses concurrent refreshes into a single in-flight request.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
from jose import jwt, JWTError

from umhw.core.config import settings
from umhw.core.errors import ERRORS_BY_CODE, CsrfRejected, GrantError, SessionExpired

log = logging.getLogger("client.session")

STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@dataclass
class SessionState:
    """Process-wide credential slots; empty at startup."""
    access_token: str | None = None
    csrf_token: str | None = None

    def clear(self) -> None:
        self.access_token = None
        self.csrf_token = None


class ApiError(GrantError):
    """Non-2xx response that does not map onto a known grant error code."""

    code = "api_error"

    def __init__(self, status_code: int, message: str | None = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"Request failed with status {status_code}")


def _error_message(body: Any) -> str:
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body.get("detail") or "")
    return ""


def _read_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def is_csrf_rejection(response: httpx.Response) -> bool:
    if response.status_code != 403:
        return False
    body = _read_body(response)
    if isinstance(body, dict):
        if body.get("code") == CsrfRejected.code:
            return True
        text = f"{body.get('message', '')} {body.get('error', '')}"
    else:
        text = str(body)
    return "csrf" in text.lower()


def raise_for_api_error(response: httpx.Response) -> None:
    """Turn an error response into the matching GrantError subclass."""
    if response.is_success:
        return
    body = _read_body(response)
    message = _error_message(body) or None
    code = body.get("code") if isinstance(body, dict) else None
    cls = ERRORS_BY_CODE.get(code)
    if cls is not None:
        raise cls(message)
    raise ApiError(response.status_code, message, body)


class SessionTokenCoordinator:
    def __init__(self,
                 base_url: str | None = None,
                 *,
                 state: SessionState | None = None,
                 transport: httpx.AsyncBaseTransport | None = None,
                 on_session_expired: Callable[[], Awaitable[None] | None] | None = None,
                 timeout: float = 30.0):
        self.base_url = (base_url or settings.CLIENT_API_URL).rstrip("/")
        self.state = state or SessionState()
        self.on_session_expired = on_session_expired
        self.csrf_header = settings.CSRF_HEADER_NAME
        # cookies (incl. the HTTP-only refresh cookie) live in the client jar; never read here
        self.http = httpx.AsyncClient(base_url=self.base_url, transport=transport, timeout=timeout)
        self._refresh_task: asyncio.Task | None = None
        self._csrf_task: asyncio.Task | None = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    # ---- credential slots ----

    def set_access_token(self, token: str | None) -> None:
        self.state.access_token = token

    async def clear_session(self) -> None:
        self.state.clear()
        if self.on_session_expired is not None:
            result = self.on_session_expired()
            if asyncio.iscoroutine(result):
                await result

    # ---- single-flight fetches ----

    async def _single_flight(self, attr: str, factory: Callable[[], Awaitable[str]]) -> str:
        task = getattr(self, attr)
        if task is None or task.done():
            task = asyncio.ensure_future(factory())
            setattr(self, attr, task)
            task.add_done_callback(lambda t, attr=attr: self._forget(attr, t))
        # shield: one waiter being cancelled must not cancel the shared fetch
        return await asyncio.shield(task)

    def _forget(self, attr: str, task: asyncio.Task) -> None:
        if getattr(self, attr) is task:
            setattr(self, attr, None)
        if not task.cancelled():
            task.exception()  # mark retrieved

    async def fetch_csrf_token(self) -> str:
        return await self._single_flight("_csrf_task", self._do_fetch_csrf)

    async def _do_fetch_csrf(self) -> str:
        resp = await self.http.get(settings.CSRF_TOKEN_PATH)
        raise_for_api_error(resp)
        token = resp.json()["csrfToken"]
        self.state.csrf_token = token
        log.debug("CSRF token fetched")
        return token

    async def refresh_access_token(self) -> str:
        return await self._single_flight("_refresh_task", self._do_refresh)

    async def _do_refresh(self) -> str:
        log.info("Refreshing access token")
        resp = await self.http.post(settings.REFRESH_TOKEN_PATH, json={})
        if not resp.is_success:
            raise SessionExpired()
        try:
            token = resp.json()["accessToken"]
        except (ValueError, KeyError, TypeError):
            log.warning("Refresh response carried no access token")
            raise SessionExpired()
        if not token:
            raise SessionExpired()
        self.state.access_token = token
        return token

    # ---- requests ----

    async def _send(self, method: str, url: str, kwargs: dict) -> tuple[httpx.Response, str | None]:
        headers = dict(kwargs.pop("headers", None) or {})
        access_token = self.state.access_token
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        if method in STATE_CHANGING_METHODS:
            csrf_token = self.state.csrf_token
            if not csrf_token:
                csrf_token = await self.fetch_csrf_token()
            headers[self.csrf_header] = csrf_token
        resp = await self.http.request(method, url, headers=headers, **kwargs)
        return resp, access_token

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a call, recovering once from CSRF rejection and once from 401.

        Retry markers live in this frame, so concurrent calls never share or
        suppress each other's retries.
        """
        method = method.upper()
        csrf_retried = False
        auth_retried = False
        while True:
            resp, sent_token = await self._send(method, url, dict(kwargs))

            if is_csrf_rejection(resp):
                if csrf_retried:
                    raise CsrfRejected(_error_message(_read_body(resp)) or None)
                csrf_retried = True
                log.warning("CSRF token rejected, refetching")
                self.state.csrf_token = None
                await self.fetch_csrf_token()
                continue

            if resp.status_code == 401 and not auth_retried:
                auth_retried = True
                if self.state.access_token and self.state.access_token != sent_token:
                    # another call already refreshed while this one was in flight
                    continue
                try:
                    await self.refresh_access_token()
                except (SessionExpired, httpx.HTTPError):
                    log.warning("Access token refresh failed, clearing session")
                    await self.clear_session()
                    raise SessionExpired()
                continue

            raise_for_api_error(resp)
            return resp

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def delete(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)


def unverified_claims(token: str | None) -> dict[str, Any]:
    """Decode token claims WITHOUT verifying them.

    For picking which screens to show only; every grant operation is
    authorised again on the server.
    """
    if not token:
        return {}
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return {}
