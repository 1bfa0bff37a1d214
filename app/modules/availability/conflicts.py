"""Drop candidate slots that collide with time already booked on a calendar.

The EHR is the source of truth for booked time, but it is also the part most
likely to be down. Every provider therefore ends up with one of two results:

- ``Filtered``: the EHR calendar was read and overlapping slots were removed.
- ``Skipped``: the EHR calendar could not be read (no mapping, not
  configured, error, timeout). The slots are kept as they were, and the
  reason travels with them so the response can say so.

Appointments from the local table are applied in both cases.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping, Union
from app.modules.availability.slots import CandidateSlot, provider_timezone
from app.platform.ports.ehr import EhrAppointmentsPort, BookedInterval

logger = logging.getLogger(__name__)

SKIP_NO_MAPPING = "no_ehr_mapping"
SKIP_NOT_CONFIGURED = "ehr_not_configured"
SKIP_EHR_ERROR = "ehr_error"
SKIP_TIMEOUT = "timeout"


@dataclass(frozen=True)
class Filtered:
    provider_id: uuid.UUID
    date: date
    slots: list[CandidateSlot]
    removed: int = 0
    status = "filtered"


@dataclass(frozen=True)
class Skipped:
    provider_id: uuid.UUID
    date: date
    slots: list[CandidateSlot]
    reason: str
    removed: int = 0  # local-table conflicts only
    detail: str | None = None
    status = "skipped"


ConflictCheck = Union[Filtered, Skipped]


@dataclass(frozen=True)
class Calendar:
    busy: list[BookedInterval] | None  # None: not read
    reason: str | None = None
    detail: str | None = None


def conflicts_with(slot: CandidateSlot, busy: Iterable[BookedInterval]) -> bool:
    return any(slot.overlaps(b.start, b.end) for b in busy)


def remove_conflicts(slots: Iterable[CandidateSlot], busy: list[BookedInterval]) -> list[CandidateSlot]:
    return [s for s in slots if not conflicts_with(s, busy)]


class ConflictFilter:
    def __init__(self, ehr: EhrAppointmentsPort | None, *, max_concurrency: int = 4):
        self.ehr = ehr
        self._sem = asyncio.Semaphore(max(1, max_concurrency))

    async def _fetch(self, external_id: str, day: date, tz: str) -> list[BookedInterval]:
        async with self._sem:
            return await self.ehr.get_appointments_for_date(external_id, day, tz)

    async def ehr_calendars(self, day: date, providers: Mapping[uuid.UUID, object], provider_ids: Iterable[uuid.UUID], timeout: float | None = None) -> dict[uuid.UUID, Calendar]:
        calendars: dict[uuid.UUID, Calendar] = {}
        tasks: dict[uuid.UUID, asyncio.Task] = {}
        for pid in provider_ids:
            p = providers.get(pid)
            external_id = getattr(p, "intakeq_practitioner_id", None)
            if self.ehr is None:
                calendars[pid] = Calendar(None, SKIP_NOT_CONFIGURED)
            elif not external_id:
                calendars[pid] = Calendar(None, SKIP_NO_MAPPING)
            else:
                tasks[pid] = asyncio.create_task(self._fetch(external_id, day, provider_timezone(p)))
        if not tasks:
            return calendars

        _, pending = await asyncio.wait(tasks.values(), timeout=None if timeout is None else max(timeout, 0))
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for pid, t in tasks.items():
            if t in pending:
                calendars[pid] = Calendar(None, SKIP_TIMEOUT)
            elif t.exception() is not None:
                exc = t.exception()
                logger.warning(f"EHR lookup failed for provider {pid} on {day}: {exc}", exc_info=exc)
                calendars[pid] = Calendar(None, SKIP_EHR_ERROR, str(exc))
            else:
                calendars[pid] = Calendar(t.result())
        return calendars

    async def filter_day(
        self,
        day: date,
        slots_by_provider: Mapping[uuid.UUID, list[CandidateSlot]],
        providers: Mapping[uuid.UUID, object],
        local_busy: Mapping[uuid.UUID, list[BookedInterval]] | None = None,
        timeout: float | None = None,
    ) -> list[ConflictCheck]:
        needed = set(slots_by_provider)
        needed |= {s.co_visit_provider_id for slots in slots_by_provider.values() for s in slots if s.co_visit_provider_id}
        calendars = await self.ehr_calendars(day, providers, needed, timeout)
        local_busy = local_busy or {}

        results: list[ConflictCheck] = []
        for pid in sorted(slots_by_provider, key=str):
            candidates = slots_by_provider[pid]
            own = calendars[pid]
            kept: list[CandidateSlot] = []
            co_visit_gap: str | None = None
            for s in candidates:
                if conflicts_with(s, local_busy.get(pid, ())):
                    continue
                if own.busy is not None and conflicts_with(s, own.busy):
                    continue
                if s.co_visit_provider_id:
                    if conflicts_with(s, local_busy.get(s.co_visit_provider_id, ())):
                        continue
                    attending = calendars[s.co_visit_provider_id]
                    if attending.busy is None:
                        co_visit_gap = co_visit_gap or attending.reason
                    elif conflicts_with(s, attending.busy):
                        continue
                kept.append(s)

            removed = len(candidates) - len(kept)
            if own.busy is None or co_visit_gap:
                reason = own.reason if own.busy is None else f"co_visit_{co_visit_gap}"
                logger.warning(f"Conflict check skipped for provider {pid} on {day} ({reason}); keeping {len(kept)} slots unchecked against the EHR")
                results.append(Skipped(pid, day, kept, reason, removed, own.detail))
            else:
                if removed:
                    logger.debug(f"Provider {pid} on {day}: {len(kept)}/{len(candidates)} slots free")
                results.append(Filtered(pid, day, kept, removed))
        return results
