import uuid
import logging
from typing import Any

import httpx

from umhw.client.session import SessionTokenCoordinator, unverified_claims
from umhw.core.config import settings
from umhw.core.errors import GrantError, SessionExpired

log = logging.getLogger("client.api")


class GrantsClient:
    """Typed calls for the three grant issuance paths."""

    def __init__(self, session: SessionTokenCoordinator):
        self.session = session

    # ---- access requests ----
    async def request_access(self, patient_identifier: str, request_type: str = "both",
                             duration_hours: float = 48, reason: str | None = None) -> dict[str, Any]:
        body = {
            "patientIdentifier": patient_identifier.strip(),
            "requestType": request_type,
            "reason": (reason or "").strip() or "Medical consultation",
            "durationHours": duration_hours,
        }
        resp = await self.session.post("/access-requests", json=body)
        return resp.json()

    async def my_requests(self, page: int = 1, limit: int = 10) -> dict[str, Any]:
        resp = await self.session.get("/access-requests/my-requests", params={"page": page, "limit": limit})
        return resp.json()

    async def get_request(self, request_id: uuid.UUID | str) -> dict[str, Any]:
        resp = await self.session.get(f"/access-requests/{request_id}")
        return resp.json()

    async def respond(self, request_id: uuid.UUID | str, action: str,
                      custom_duration_hours: float | str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"action": action}
        if custom_duration_hours is not None:
            body["customDurationHours"] = custom_duration_hours
        resp = await self.session.put(f"/access-requests/{request_id}/respond", json=body)
        return resp.json()

    async def cancel_request(self, request_id: uuid.UUID | str) -> dict[str, Any]:
        resp = await self.session.delete(f"/access-requests/{request_id}")
        return resp.json()

    # ---- emergency QR ----
    async def generate_qr(self, duration_hours: float = 24, access_scope: str = "emergency",
                          max_uses: int | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"durationHours": duration_hours, "accessScope": access_scope}
        if max_uses is not None:
            body["maxUses"] = max_uses
        resp = await self.session.post("/qr/generate", json=body)
        return resp.json()

    async def my_qr_codes(self, page: int = 1, limit: int = 10) -> dict[str, Any]:
        resp = await self.session.get("/qr/my-codes", params={"page": page, "limit": limit})
        return resp.json()

    async def view_emergency(self, token: str) -> dict[str, Any]:
        resp = await self.session.get(f"/qr/public/{token}")
        return resp.json()

    async def revoke_qr(self, grant_id: uuid.UUID | str) -> None:
        await self.session.delete(f"/qr/{grant_id}")

    # ---- share links ----
    async def create_share(self, duration: str = "7d", shared_with_email: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"duration": duration}
        if shared_with_email:
            body["sharedWithEmail"] = shared_with_email
        resp = await self.session.post("/share", json=body)
        return resp.json()

    async def my_share_links(self, page: int = 1, limit: int = 10) -> dict[str, Any]:
        resp = await self.session.get("/share/manage", params={"page": page, "limit": limit})
        return resp.json()

    async def view_shared(self, token: str) -> dict[str, Any]:
        resp = await self.session.get(f"/share/{token}")
        return resp.json()

    async def revoke_share(self, grant_id: uuid.UUID | str) -> None:
        await self.session.delete(f"/share/manage/{grant_id}")


class AdminClient:
    def __init__(self, session: SessionTokenCoordinator):
        self.session = session

    async def update_role(self, user_id: uuid.UUID | str, role: str) -> bool:
        """Change a user's role; returns True if this logged the caller out.

        Demoting yourself leaves a token whose role claim no longer matches,
        so the local session is ended right away. When the caller's identity
        cannot be confirmed after the change, the session is ended as well.
        """
        # read before the change; the claims only steer this client
        claims = unverified_claims(self.session.state.access_token)
        acting_id = claims.get("sub") or claims.get("id")

        await self.session.put(f"/admin/users/{user_id}/role", json={"role": role})
        if role == "admin":
            return False

        if acting_id is None:
            try:
                current = (await self.session.get("/profile/profile")).json()
                acting_id = (current.get("user") or {}).get("id")
            except SessionExpired:
                return True
            except (GrantError, httpx.HTTPError, ValueError, AttributeError):
                log.warning("Could not confirm own identity after role change")
                acting_id = None
            if acting_id is None:
                acting_id = user_id

        if str(acting_id) != str(user_id):
            return False
        log.info("Own role changed, ending session")
        try:
            await self.session.post(settings.LOGOUT_PATH)
        finally:
            await self.session.clear_session()
        return True
