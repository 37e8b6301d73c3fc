from fastapi import APIRouter
from umhw.modules.grants.router import access_requests_router, qr_router, share_router
from umhw.modules.audit.router import router as audit_router

api_router = APIRouter()
api_router.include_router(access_requests_router, prefix="/access-requests", tags=["access-requests"])
api_router.include_router(qr_router, prefix="/qr", tags=["qr"])
api_router.include_router(share_router, prefix="/share", tags=["share"])
api_router.include_router(audit_router, tags=["audit"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
