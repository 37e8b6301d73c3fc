import uuid
import logging
from typing import Any
import httpx
from umhw.core.config import settings
from umhw.core.errors import NotFound
from umhw.platform.ports.directory import PrincipalDirectoryPort, PrincipalRef
from umhw.platform.ports.records import RecordsPort

log = logging.getLogger("records.http")

class _RecordsApi:
    def __init__(self, base_url: str | None = None, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = (base_url or settings.RECORDS_API_URL).rstrip("/")
        self.timeout = timeout or settings.RECORDS_API_TIMEOUT
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

class HttpPrincipalDirectory(_RecordsApi, PrincipalDirectoryPort):
    """Looks principals up by username or email on the records/profile service."""

    async def lookup_principal(self, identifier: str) -> PrincipalRef | None:
        async with self._client() as client:
            resp = await client.get("/principals/lookup", params={"identifier": identifier})
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        data = resp.json()
        return PrincipalRef(
            id=uuid.UUID(str(data["id"])),
            role=data.get("role", "patient"),
            username=data.get("username"),
            email=data.get("email"),
        )

class HttpRecordsProvider(_RecordsApi, RecordsPort):
    async def get_scoped_records(self, subject_id: uuid.UUID, scope: str) -> list[dict[str, Any]]:
        async with self._client() as client:
            resp = await client.get(f"/patients/{subject_id}/records", params={"scope": scope})
        if resp.status_code == 404:
            raise NotFound("Patient records not found")
        resp.raise_for_status()
        body = resp.json()
        records = body.get("records", []) if isinstance(body, dict) else body
        log.debug(f"Fetched {len(records)} records for subject={subject_id} scope={scope}")
        return records
