import uuid
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from umhw.core.db import get_session
from umhw.core.paging import Page, PageParams
from umhw.core.security import Principal, get_principal, require_role
from umhw.modules.audit.service import RequestInfo
from umhw.modules.grants.policy import KIND_QR, KIND_REQUEST, KIND_SHARE
from umhw.modules.grants.schemas import (
    AccessRequestCreate, AccessRequestRespond, GrantRef, GrantView, QrGenerate,
    ResolvedGrant, ShareCreate,
)
from umhw.modules.grants.service import GrantService

access_requests_router = APIRouter()
qr_router = APIRouter()
share_router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> GrantService:
    return GrantService(session)

def page_params(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100)) -> PageParams:
    return PageParams(page=page, limit=limit)

def request_info(request: Request) -> RequestInfo:
    return RequestInfo(
        client_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

# ---- Access requests (doctor -> patient) ----

@access_requests_router.post("", response_model=GrantRef, status_code=status.HTTP_201_CREATED)
async def create_access_request(
    payload: AccessRequestCreate,
    principal: Principal = Depends(require_role("doctor")),
    service: GrantService = Depends(svc),
):
    return await service.request_access(
        principal.user_id, payload.patient_identifier, payload.request_type,
        payload.duration_hours, payload.reason,
    )

@access_requests_router.get("/my-requests", response_model=Page[GrantView])
async def my_access_requests(
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_role("doctor", "patient")),
    service: GrantService = Depends(svc),
):
    role = "issuer" if principal.role == "doctor" else "subject"
    return await service.list_grants_for(principal.user_id, role, params, kind=KIND_REQUEST)

@access_requests_router.get("/{request_id}", response_model=ResolvedGrant)
async def get_access_request(
    request_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: GrantService = Depends(svc),
):
    return await service.resolution.resolve_by_id(request_id, principal.user_id, kind=KIND_REQUEST)

@access_requests_router.put("/{request_id}/respond", response_model=GrantView)
async def respond_to_access_request(
    request_id: uuid.UUID,
    payload: AccessRequestRespond,
    principal: Principal = Depends(require_role("patient")),
    service: GrantService = Depends(svc),
):
    return await service.respond_to_grant(request_id, principal.user_id, payload.action, payload.custom_duration_hours)

@access_requests_router.delete("/{request_id}", response_model=GrantView)
async def cancel_or_revoke_access_request(
    request_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: GrantService = Depends(svc),
):
    # doctors withdraw their own pending request; patients revoke
    if principal.role == "doctor":
        return await service.withdraw_request(request_id, principal.user_id)
    return await service.revocation.revoke(request_id, principal.user_id, kind=KIND_REQUEST)

# ---- Emergency QR ----

@qr_router.post("/generate", response_model=GrantRef, status_code=status.HTTP_201_CREATED)
async def generate_qr(
    payload: QrGenerate,
    principal: Principal = Depends(require_role("patient")),
    service: GrantService = Depends(svc),
):
    return await service.issue_grant(
        KIND_QR, principal.user_id, None, payload.access_scope, payload.duration_hours,
        max_uses=payload.max_uses,
    )

@qr_router.get("/my-codes", response_model=Page[GrantView])
async def my_qr_codes(
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_role("patient")),
    service: GrantService = Depends(svc),
):
    return await service.list_grants_for(principal.user_id, "subject", params, kind=KIND_QR)

@qr_router.get("/public/{token}", response_model=ResolvedGrant)
async def resolve_qr(
    token: str,
    info: RequestInfo = Depends(request_info),
    service: GrantService = Depends(svc),
):
    return await service.resolution.resolve_public(token, kind=KIND_QR, request=info)

@qr_router.delete("/{grant_id}", response_model=GrantView)
async def revoke_qr(
    grant_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: GrantService = Depends(svc),
):
    return await service.revocation.revoke(grant_id, principal.user_id, kind=KIND_QR)

# ---- Share links ----

@share_router.post("", response_model=GrantRef, status_code=status.HTTP_201_CREATED)
async def create_share_link(
    payload: ShareCreate,
    principal: Principal = Depends(require_role("patient")),
    service: GrantService = Depends(svc),
):
    return await service.issue_grant(
        KIND_SHARE, principal.user_id, None, None, payload.duration,
        shared_with_email=payload.shared_with_email,
    )

@share_router.get("/manage", response_model=Page[GrantView])
async def my_share_links(
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_role("patient")),
    service: GrantService = Depends(svc),
):
    return await service.list_grants_for(principal.user_id, "subject", params, kind=KIND_SHARE)

@share_router.delete("/manage/{grant_id}", response_model=GrantView)
async def revoke_share_link(
    grant_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: GrantService = Depends(svc),
):
    return await service.revocation.revoke(grant_id, principal.user_id, kind=KIND_SHARE)

@share_router.get("/{token}", response_model=ResolvedGrant)
async def resolve_share_link(
    token: str,
    info: RequestInfo = Depends(request_info),
    service: GrantService = Depends(svc),
):
    return await service.resolution.resolve_public(token, kind=KIND_SHARE, request=info)
