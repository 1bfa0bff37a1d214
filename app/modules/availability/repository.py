import uuid
from datetime import date
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from app.modules.availability.models import ProviderAvailability, AvailabilityException, ProviderBookingSettings

class AvailabilityRepository:
    def __init__(self, s: AsyncSession): self.s = s

    # recurring blocks
    async def create_block(self, org: uuid.UUID, provider_id: uuid.UUID, **data) -> ProviderAvailability:
        obj = ProviderAvailability(org_id=org, provider_id=provider_id, is_recurring=True, **data)
        self.s.add(obj); await self.s.flush(); return obj

    async def get_block(self, org: uuid.UUID, provider_id: uuid.UUID, block_id: uuid.UUID) -> ProviderAvailability | None:
        res = await self.s.execute(select(ProviderAvailability).where(
            *ProviderAvailability.live_in(org),
            ProviderAvailability.provider_id == provider_id,
            ProviderAvailability.id == block_id,
        ))
        return res.scalar_one_or_none()

    async def list_blocks(self, org: uuid.UUID, provider_ids: set[uuid.UUID]) -> Sequence[ProviderAvailability]:
        if not provider_ids:
            return []
        res = await self.s.execute(select(ProviderAvailability).where(
            *ProviderAvailability.live_in(org),
            ProviderAvailability.provider_id.in_(provider_ids),
            ProviderAvailability.is_recurring.is_(True),
        ).order_by(ProviderAvailability.provider_id, ProviderAvailability.day_of_week, ProviderAvailability.start_time))
        return res.scalars().all()

    # exceptions
    async def create_exception(self, org: uuid.UUID, provider_id: uuid.UUID, **data) -> AvailabilityException:
        obj = AvailabilityException(org_id=org, provider_id=provider_id, **data)
        self.s.add(obj); await self.s.flush(); return obj

    async def get_exception(self, org: uuid.UUID, provider_id: uuid.UUID, exception_id: uuid.UUID) -> AvailabilityException | None:
        res = await self.s.execute(select(AvailabilityException).where(
            *AvailabilityException.live_in(org),
            AvailabilityException.provider_id == provider_id,
            AvailabilityException.id == exception_id,
        ))
        return res.scalar_one_or_none()

    async def list_exceptions(self, org: uuid.UUID, provider_ids: set[uuid.UUID], start: date | None = None, end: date | None = None) -> Sequence[AvailabilityException]:
        """Exceptions touching [start, end]; a ranged exception counts if any of its days fall inside."""
        if not provider_ids:
            return []
        cond = [*AvailabilityException.live_in(org), AvailabilityException.provider_id.in_(provider_ids)]
        if end is not None:
            cond.append(AvailabilityException.exception_date <= end)
        if start is not None:
            cond.append(func.coalesce(AvailabilityException.end_date, AvailabilityException.exception_date) >= start)
        res = await self.s.execute(select(AvailabilityException).where(*cond).order_by(
            AvailabilityException.provider_id, AvailabilityException.exception_date, AvailabilityException.created_at
        ))
        return res.scalars().all()

    # booking policy
    async def booking_settings(self, org: uuid.UUID, provider_ids: set[uuid.UUID]) -> dict[uuid.UUID, ProviderBookingSettings]:
        if not provider_ids:
            return {}
        res = await self.s.execute(select(ProviderBookingSettings).where(
            *ProviderBookingSettings.live_in(org),
            ProviderBookingSettings.provider_id.in_(provider_ids),
        ))
        return {row.provider_id: row for row in res.scalars().all()}
