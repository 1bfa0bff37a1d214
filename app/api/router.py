from fastapi import APIRouter
from app.modules.availability.router import router as availability_router
from app.modules.audit.router import router as audit_router

api_router = APIRouter()
api_router.include_router(availability_router, tags=["availability"])
api_router.include_router(audit_router, tags=["audit"])
# availability_router carries both /patient-booking/* and /providers/{id}/*

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
