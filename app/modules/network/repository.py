import uuid
from datetime import date
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.modules.network.models import ProviderPayerNetwork, SupervisionRelationship
from app.modules.directory.models import Provider

class NetworkRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_direct(self, org: uuid.UUID, payer_id: uuid.UUID, *, status: str, not_after: date) -> Sequence[ProviderPayerNetwork]:
        res = await self.session.execute(select(ProviderPayerNetwork).where(
            *ProviderPayerNetwork.live_in(org),
            ProviderPayerNetwork.payer_id == payer_id,
            ProviderPayerNetwork.status == status,
            ProviderPayerNetwork.effective_date <= not_after,
        ).order_by(ProviderPayerNetwork.effective_date, ProviderPayerNetwork.provider_id))
        return res.scalars().all()

    async def list_supervised(self, org: uuid.UUID, payer_id: uuid.UUID, *, status: str, not_after: date) -> Sequence[SupervisionRelationship]:
        res = await self.session.execute(select(SupervisionRelationship).where(
            *SupervisionRelationship.live_in(org),
            SupervisionRelationship.payer_id == payer_id,
            SupervisionRelationship.status == status,
            SupervisionRelationship.effective_date <= not_after,
        ).order_by(SupervisionRelationship.effective_date, SupervisionRelationship.rendering_provider_id))
        return res.scalars().all()

    async def get_providers(self, org: uuid.UUID, provider_ids: set[uuid.UUID]) -> dict[uuid.UUID, Provider]:
        if not provider_ids:
            return {}
        res = await self.session.execute(select(Provider).where(
            *Provider.live_in(org),
            Provider.id.in_(provider_ids),
        ))
        return {p.id: p for p in res.scalars().all()}

    async def get_provider(self, org: uuid.UUID, provider_id: uuid.UUID) -> Provider | None:
        res = await self.session.execute(select(Provider).where(*Provider.live_in(org), Provider.id == provider_id))
        return res.scalar_one_or_none()
