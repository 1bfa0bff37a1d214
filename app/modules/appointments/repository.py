import uuid
from datetime import datetime
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.modules.appointments.models import Appointment, NON_BLOCKING_STATUSES

class AppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_blocking(self, org_id: uuid.UUID, provider_ids: set[uuid.UUID], start: datetime, end: datetime) -> Sequence[Appointment]:
        """Appointments that still hold time on any of the providers' calendars within [start, end)."""
        if not provider_ids:
            return []
        q = select(Appointment).where(
            *Appointment.live_in(org_id),
            Appointment.provider_id.in_(provider_ids),
            Appointment.status.not_in(NON_BLOCKING_STATUSES),
            Appointment.start_time < end,
            Appointment.end_time > start,
        ).order_by(Appointment.start_time)
        res = await self.session.execute(q)
        return res.scalars().all()
