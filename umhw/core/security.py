import uuid
from typing import Literal
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel
from umhw.core.config import settings
from umhw.core.errors import Unauthorized, Forbidden

http_bearer = HTTPBearer(auto_error=False)

Role = Literal["admin", "doctor", "patient"]

class Principal(BaseModel):
    user_id: uuid.UUID
    role: Role = "patient"
    username: str | None = None
    email: str | None = None

def _decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG], audience=settings.REQUIRED_AUDIENCE)
    except JWTError as e:
        raise Unauthorized(f"Invalid token: {e}")

def principal_from_token(token: str) -> Principal:
    data = _decode_token(token)
    try:
        user_id = uuid.UUID(str(data.get("sub") or data.get("id")))
    except ValueError:
        raise Unauthorized("Invalid token: bad subject")
    role = data.get("role", "patient")
    if role not in ("admin", "doctor", "patient"):
        raise Unauthorized("Invalid token: unknown role")
    return Principal(user_id=user_id, role=role, username=data.get("username"), email=data.get("email"))

async def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(http_bearer)) -> Principal:
    if creds is None:
        raise Unauthorized("Missing token")
    return principal_from_token(creds.credentials)

def require_role(*allowed: str):
    def dep(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in allowed:
            raise Forbidden(f"This action requires one of the roles: {', '.join(allowed)}")
        return principal
    return dep
