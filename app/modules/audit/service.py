import uuid
from datetime import date, time, datetime
from typing import Sequence
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from app.modules.audit.models import AuditEvent

def snapshot(obj, fields: Sequence[str]) -> dict:
    """JSON-safe copy of the audited columns."""
    out = {}
    for f in fields:
        v = getattr(obj, f, None)
        if isinstance(v, (date, time, datetime, uuid.UUID)):
            v = v.isoformat() if not isinstance(v, uuid.UUID) else str(v)
        out[f] = v
    return out

class AuditService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(self,
                  org_id: uuid.UUID,
                  actor_user_id: uuid.UUID,
                  action: str,
                  resource_type: str,
                  resource_id: str | uuid.UUID,
                  *,
                  provider_id: uuid.UUID | None = None,
                  details: dict | None = None,
                  request: Request | None = None) -> AuditEvent:
        # Flushed with the caller's write; the caller owns the commit.
        ev = AuditEvent(
            org_id=org_id,
            actor_user_id=actor_user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            provider_id=provider_id,
            details=details,
            client_ip=(request.client.host if request and request.client else None),
            user_agent=(request.headers.get("user-agent") if request else None),
        )
        self.session.add(ev)
        await self.session.flush()
        return ev

    async def recent(self, org_id: uuid.UUID, *, resource_type: str | None = None, resource_id: str | None = None,
                     provider_id: uuid.UUID | None = None, limit: int = 50) -> Sequence[AuditEvent]:
        cond = [*AuditEvent.live_in(org_id)]
        if resource_type:
            cond.append(AuditEvent.resource_type == resource_type)
        if resource_id:
            cond.append(AuditEvent.resource_id == resource_id)
        if provider_id:
            cond.append(AuditEvent.provider_id == provider_id)
        res = await self.session.execute(select(AuditEvent).where(*cond).order_by(desc(AuditEvent.occurred_at)).limit(limit))
        return res.scalars().all()
