import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.db import get_session
from app.core.security import get_principal, Principal, require_scopes
from app.modules.audit.service import AuditService

router = APIRouter()

@router.get("/audit", dependencies=[Depends(require_scopes("audit:read"))])
async def list_audit(
    resource_type: str | None = None,
    resource_id: str | None = None,
    provider_id: uuid.UUID | None = None,
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    rows = await AuditService(session).recent(principal.org_id, resource_type=resource_type, resource_id=resource_id, provider_id=provider_id, limit=limit)
    return [
        {
            "id": row.id,
            "actor_user_id": row.actor_user_id,
            "action": row.action,
            "resource_type": row.resource_type,
            "resource_id": row.resource_id,
            "provider_id": row.provider_id,
            "details": row.details,
            "occurred_at": row.occurred_at,
        }
        for row in rows
    ]
