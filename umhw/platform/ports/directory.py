import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

@dataclass(frozen=True)
class PrincipalRef:
    id: uuid.UUID
    role: str  # admin | doctor | patient
    username: str | None = None
    email: str | None = None

@runtime_checkable
class PrincipalDirectoryPort(Protocol):
    async def lookup_principal(self, identifier: str) -> PrincipalRef | None: ...
