import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.modules.payers.models import Payer

class PayerRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, org_id: uuid.UUID, payer_id: uuid.UUID) -> Payer | None:
        res = await self.session.execute(select(Payer).where(Payer.id == payer_id, *Payer.live_in(org_id)))
        return res.scalar_one_or_none()
