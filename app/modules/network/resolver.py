"""Which providers may be booked against a payer, and on what basis.

A provider is bookable for a payer either through its own contract
(``DirectRelationship``) or because an attending who holds the contract
supervises it (``SupervisedRelationship``). Both kinds are returned side by
side; a provider that has both yields two entries because billing differs.
"""
import uuid
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Literal, Union
from sqlalchemy.exc import SQLAlchemyError
from app.modules.directory.models import Provider
from app.modules.network.models import ProviderPayerNetwork
from app.modules.network.repository import NetworkRepository
from app.modules.availability.errors import NetworkLookupFailed

logger = logging.getLogger(__name__)

DIRECT_STATUS = "in_network"
SUPERVISION_STATUS = "active"


def _in_effect(effective_date: date, expiration_date: date | None, day: date) -> bool:
    return effective_date <= day and (expiration_date is None or day <= expiration_date)


@dataclass(frozen=True)
class DirectRelationship:
    provider: Provider
    payer_id: uuid.UUID
    effective_date: date
    expiration_date: date | None = None
    kind: Literal["direct"] = "direct"

    @property
    def provider_id(self) -> uuid.UUID:
        return self.provider.id

    @property
    def billing_provider_id(self) -> uuid.UUID:
        return self.provider.id

    @property
    def requires_co_visit(self) -> bool:
        return False

    def is_effective_on(self, day: date) -> bool:
        return _in_effect(self.effective_date, self.expiration_date, day)


@dataclass(frozen=True)
class SupervisedRelationship:
    provider: Provider  # the rendering provider
    billing_provider: Provider | None
    billing_provider_id: uuid.UUID
    payer_id: uuid.UUID
    supervision_level: str
    requires_co_visit: bool
    effective_date: date
    expiration_date: date | None = None
    kind: Literal["supervised"] = "supervised"

    @property
    def provider_id(self) -> uuid.UUID:
        return self.provider.id

    def is_effective_on(self, day: date) -> bool:
        return _in_effect(self.effective_date, self.expiration_date, day)


NetworkEntry = Union[DirectRelationship, SupervisedRelationship]


def _sort_key(entry: NetworkEntry):
    p = entry.provider
    return (p.last_name or "", p.first_name or "", str(p.id), 0 if entry.kind == "direct" else 1, str(entry.billing_provider_id), entry.effective_date)


class NetworkResolver:
    def __init__(self, repo: NetworkRepository):
        self.repo = repo

    async def resolve(
        self,
        org: uuid.UUID,
        payer_id: uuid.UUID,
        start_date: date,
        end_date: date,
        *,
        provider_id: uuid.UUID | None = None,
        require_bookable: bool = False,
    ) -> list[NetworkEntry]:
        try:
            direct = await self.repo.list_direct(org, payer_id, status=DIRECT_STATUS, not_after=end_date)
            supervised = await self.repo.list_supervised(org, payer_id, status=SUPERVISION_STATUS, not_after=end_date)
            ids = {d.provider_id for d in direct}
            ids |= {s.rendering_provider_id for s in supervised} | {s.billing_provider_id for s in supervised}
            providers = await self.repo.get_providers(org, ids)
        except SQLAlchemyError as e:
            logger.exception(f"Network lookup failed for payer {payer_id}")
            raise NetworkLookupFailed(f"network lookup failed for payer {payer_id}") from e

        # contracts still in force somewhere in the requested range
        contracts = [d for d in direct if d.expiration_date is None or d.expiration_date >= start_date]
        contracts_by_provider: dict[uuid.UUID, list[ProviderPayerNetwork]] = defaultdict(list)
        for c in contracts:
            contracts_by_provider[c.provider_id].append(c)

        def usable(p: Provider | None) -> bool:
            if p is None or not p.is_active:
                return False
            if require_bookable and not p.is_bookable:
                return False
            return provider_id is None or p.id == provider_id

        entries: list[NetworkEntry] = []
        for c in contracts:
            p = providers.get(c.provider_id)
            if not usable(p):
                continue
            entries.append(DirectRelationship(provider=p, payer_id=payer_id, effective_date=c.effective_date, expiration_date=c.expiration_date))

        for s in supervised:
            p = providers.get(s.rendering_provider_id)
            if not usable(p):
                continue
            added = 0
            for contract in contracts_by_provider.get(s.billing_provider_id, []):
                # cannot bill under the attending before their own contract starts or after it ends
                effective = max(s.effective_date, contract.effective_date)
                expirations = [d for d in (s.expiration_date, contract.expiration_date) if d is not None]
                expiration = min(expirations) if expirations else None
                if expiration is not None and (expiration < effective or expiration < start_date):
                    continue
                if effective > end_date:
                    continue
                entries.append(SupervisedRelationship(
                    provider=p,
                    billing_provider=providers.get(s.billing_provider_id),
                    billing_provider_id=s.billing_provider_id,
                    payer_id=payer_id,
                    supervision_level=s.supervision_level,
                    requires_co_visit=bool(s.requires_co_visit or s.supervision_level == "co_visit_required"),
                    effective_date=effective,
                    expiration_date=expiration,
                ))
                added += 1
            if not added:
                logger.debug(f"Supervision {s.id} skipped: billing provider {s.billing_provider_id} has no contract with payer {payer_id} overlapping it")

        entries.sort(key=_sort_key)
        logger.info(f"Payer {payer_id}: {len(entries)} network entries ({sum(1 for e in entries if e.kind == 'direct')} direct) for {start_date}..{end_date}")
        return entries
