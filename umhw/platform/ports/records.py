import uuid
from typing import Any, Protocol, runtime_checkable

@runtime_checkable
class RecordsPort(Protocol):
    async def get_scoped_records(self, subject_id: uuid.UUID, scope: str) -> list[dict[str, Any]]: ...
