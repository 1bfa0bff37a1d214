import asyncio
import uuid
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo
from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import settings
from app.modules.availability.repository import AvailabilityRepository
from app.modules.availability.schemas import MergedAvailabilityRequest
from app.modules.availability.schedule import DaySchedule, TimeWindow, day_of_week, resolve_day, resolve_day_windows
from app.modules.availability.slots import CandidateSlot, generate_slot_times, intersect_windows, provider_timezone, wall_clock
from app.modules.availability.conflicts import ConflictFilter, Skipped
from app.modules.availability.errors import PayerNotFound, ProviderNotFound, NetworkLookupFailed
from app.modules.appointments.repository import AppointmentRepository
from app.modules.audit.service import AuditService, snapshot
from app.modules.network.repository import NetworkRepository
from app.modules.network.resolver import NetworkResolver, NetworkEntry
from app.modules.payers.repository import PayerRepository
from app.platform.ports.ehr import BookedInterval, EhrAppointmentsPort
from app.platform.provider_registry import registry

logger = logging.getLogger(__name__)

_UNSET = object()

MSG_PAYER_NOT_BOOKABLE = "This insurance is not currently accepted for booking"
MSG_NO_PROVIDERS = "No providers accept this insurance"
MSG_NO_SLOTS = "No available slots for the requested dates"
MSG_LOAD_FAILED = "Availability could not be loaded; please try again shortly"

BLOCK_FIELDS = ("provider_id", "day_of_week", "start_time", "end_time", "effective_date", "expiration_date")
EXCEPTION_FIELDS = ("provider_id", "exception_date", "end_date", "exception_type", "start_time", "end_time", "reason")


def _days(start: date, end: date):
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def provider_brief(p) -> dict:
    return {
        "id": p.id,
        "name": p.display_name,
        "title": p.title,
        "role": p.role,
        "accepts_new_patients": bool(p.accepts_new_patients),
        "languages_spoken": list(p.languages_spoken or []),
    }


def slot_sort_key(s: CandidateSlot):
    return (s.date, s.start, s.provider_name, str(s.provider_id), str(s.co_visit_provider_id or ""))


def _first_per_start(slots: list[CandidateSlot]) -> list[CandidateSlot]:
    seen = set()
    out = []
    for s in slots:
        key = (s.date, s.start, s.provider_id)
        if key not in seen:
            seen.add(key)
            out.append(s)
    return out


class AvailabilityService:
    def __init__(self, s: AsyncSession, *, ehr: EhrAppointmentsPort | None = _UNSET):
        self.s = s
        self.repo = AvailabilityRepository(s)
        self.payers = PayerRepository(s)
        self.network_repo = NetworkRepository(s)
        self.network = NetworkResolver(self.network_repo)
        self.appointments = AppointmentRepository(s)
        self.audit = AuditService(s)
        self.ehr = registry.ehr_client() if ehr is _UNSET else ehr

    # ---- admin: recurring blocks & exceptions ----

    async def _provider(self, org: uuid.UUID, provider_id: uuid.UUID):
        p = await self.network_repo.get_provider(org, provider_id)
        if p is None:
            raise ProviderNotFound(provider_id)
        return p

    async def create_block(self, org: uuid.UUID, provider_id: uuid.UUID, actor_id: uuid.UUID, request: Request | None = None, **data):
        await self._provider(org, provider_id)
        obj = await self.repo.create_block(org, provider_id, **data)
        await self.audit.log(org, actor_id, "create", "availability_block", obj.id, provider_id=provider_id,
                             details=snapshot(obj, BLOCK_FIELDS), request=request)
        await self.s.commit()
        logger.info(f"Availability block {obj.id} created for provider {provider_id} (dow={obj.day_of_week} {obj.start_time}-{obj.end_time})")
        return obj

    async def list_blocks(self, org: uuid.UUID, provider_id: uuid.UUID):
        await self._provider(org, provider_id)
        return await self.repo.list_blocks(org, {provider_id})

    async def delete_block(self, org: uuid.UUID, provider_id: uuid.UUID, block_id: uuid.UUID, actor_id: uuid.UUID, request: Request | None = None) -> bool:
        obj = await self.repo.get_block(org, provider_id, block_id)
        if obj is None:
            return False
        obj.soft_delete()
        await self.audit.log(org, actor_id, "delete", "availability_block", obj.id, provider_id=provider_id,
                             details=snapshot(obj, BLOCK_FIELDS), request=request)
        await self.s.commit()
        logger.info(f"Availability block {block_id} deleted for provider {provider_id}")
        return True

    async def create_exception(self, org: uuid.UUID, provider_id: uuid.UUID, actor_id: uuid.UUID, request: Request | None = None, **data):
        await self._provider(org, provider_id)
        obj = await self.repo.create_exception(org, provider_id, **data)
        await self.audit.log(org, actor_id, "create", "availability_exception", obj.id, provider_id=provider_id,
                             details=snapshot(obj, EXCEPTION_FIELDS), request=request)
        await self.s.commit()
        logger.info(f"Availability exception {obj.id} ({obj.exception_type}) created for provider {provider_id} on {obj.exception_date}")
        return obj

    async def list_exceptions(self, org: uuid.UUID, provider_id: uuid.UUID, start: date | None = None, end: date | None = None):
        await self._provider(org, provider_id)
        return await self.repo.list_exceptions(org, {provider_id}, start, end)

    async def delete_exception(self, org: uuid.UUID, provider_id: uuid.UUID, exception_id: uuid.UUID, actor_id: uuid.UUID, request: Request | None = None) -> bool:
        obj = await self.repo.get_exception(org, provider_id, exception_id)
        if obj is None:
            return False
        obj.soft_delete()
        await self.audit.log(org, actor_id, "delete", "availability_exception", obj.id, provider_id=provider_id,
                             details=snapshot(obj, EXCEPTION_FIELDS), request=request)
        await self.s.commit()
        logger.info(f"Availability exception {exception_id} deleted for provider {provider_id}")
        return True

    async def day_schedule(self, org: uuid.UUID, provider_id: uuid.UUID, day: date) -> DaySchedule:
        await self._provider(org, provider_id)
        blocks = await self.repo.list_blocks(org, {provider_id})
        exceptions = await self.repo.list_exceptions(org, {provider_id}, day, day)
        return resolve_day(blocks, exceptions, day)

    # ---- network ----

    async def _payer(self, org: uuid.UUID, payer_id: uuid.UUID):
        try:
            payer = await self.payers.get(org, payer_id)
        except SQLAlchemyError as e:
            logger.exception(f"Payer lookup failed for {payer_id}")
            raise NetworkLookupFailed(f"payer lookup failed for {payer_id}") from e
        if payer is None:
            raise PayerNotFound(payer_id)
        return payer

    async def providers_for_payer(self, org: uuid.UUID, payer_id: uuid.UUID, start: date, end: date, provider_id: uuid.UUID | None = None) -> list[NetworkEntry]:
        await self._payer(org, payer_id)
        return await self.network.resolve(org, payer_id, start, end, provider_id=provider_id)

    # ---- patient booking ----

    async def merged_availability(self, org: uuid.UUID, q: MergedAvailabilityRequest, now: datetime | None = None) -> dict:
        now = now or datetime.now(timezone.utc)
        start, end = q.range_start, q.range_end
        result = {
            "total_slots": 0,
            "date_range": {"start_date": start, "end_date": end},
            "slots": [],
            "slots_by_date": {},
            "providers": [],
            "conflict_checks": [],
            "message": MSG_NO_SLOTS,
            "warnings": [],
            "debug": {"payer_id": str(q.payer_id), "appointment_duration": q.appointment_duration, "network_entries": 0, "ehr": getattr(self.ehr, "name", None)},
        }

        payer = await self._payer(org, q.payer_id)
        if not payer.is_bookable:
            logger.info(f"Payer {payer.id} is {payer.credentialing_status}; no availability offered")
            result["message"] = MSG_PAYER_NOT_BOOKABLE
            result["debug"]["credentialing_status"] = payer.credentialing_status
            return result

        entries = await self.network.resolve(org, q.payer_id, start, end, provider_id=q.provider_id, require_bookable=True)
        result["debug"]["network_entries"] = len(entries)
        if not entries:
            result["message"] = MSG_NO_PROVIDERS
            return result

        by_provider: dict[uuid.UUID, list[NetworkEntry]] = defaultdict(list)
        providers: dict[uuid.UUID, object] = {}
        for e in entries:
            by_provider[e.provider_id].append(e)
            providers[e.provider_id] = e.provider
            if e.kind == "supervised" and e.requires_co_visit and e.billing_provider is not None:
                providers.setdefault(e.billing_provider_id, e.billing_provider)
        ids = set(providers)

        try:
            blocks = await self.repo.list_blocks(org, ids)
            exceptions = await self.repo.list_exceptions(org, ids, start, end)
        except SQLAlchemyError:
            logger.exception(f"Loading schedules failed for payer {q.payer_id}")
            await self.s.rollback()
            result["message"] = MSG_LOAD_FAILED
            result["warnings"].append("provider schedules could not be loaded")
            return result
        blocks_by: dict[uuid.UUID, list] = defaultdict(list)
        for b in blocks:
            blocks_by[b.provider_id].append(b)
        exceptions_by: dict[uuid.UUID, list] = defaultdict(list)
        for x in exceptions:
            exceptions_by[x.provider_id].append(x)

        try:
            booking = await self.repo.booking_settings(org, ids)
        except SQLAlchemyError:
            logger.exception("Loading booking settings failed; using defaults")
            await self.s.rollback()
            booking = {}
            result["warnings"].append("provider booking settings could not be loaded; defaults applied")

        candidates: dict[date, dict[uuid.UUID, list[CandidateSlot]]] = defaultdict(dict)
        for pid, provider_entries in by_provider.items():
            try:
                per_day = self._provider_slots(providers[pid], provider_entries, blocks_by, exceptions_by, booking.get(pid), payer, q, now)
            except Exception:
                logger.exception(f"Computing availability failed for provider {pid}; skipping")
                result["warnings"].append(f"availability for provider {pid} could not be computed")
                continue
            for day, slots in per_day.items():
                if slots:
                    candidates[day][pid] = slots

        local_busy: dict[uuid.UUID, list[BookedInterval]] = defaultdict(list)
        if candidates:
            window_start = datetime(start.year, start.month, start.day, tzinfo=timezone.utc) - timedelta(days=1)
            window_end = datetime(end.year, end.month, end.day, tzinfo=timezone.utc) + timedelta(days=2)
            try:
                for a in await self.appointments.list_blocking(org, ids, window_start, window_end):
                    local_busy[a.provider_id].append(BookedInterval(a.start_time, a.end_time, source="local", external_id=str(a.id)))
            except SQLAlchemyError:
                logger.exception("Loading local appointments failed; checking against the EHR only")
                await self.s.rollback()
                result["warnings"].append("local appointments could not be loaded; slots checked against the EHR only")

        checker = ConflictFilter(self.ehr, max_concurrency=settings.EHR_MAX_CONCURRENCY)
        days = sorted(candidates)
        # every day shares the semaphore and one deadline for the whole phase
        checks = await asyncio.gather(*[
            checker.filter_day(day, candidates[day], providers, local_busy, timeout=settings.AVAILABILITY_TIMEOUT_SECONDS)
            for day in days
        ])

        final: list[CandidateSlot] = []
        skipped = []
        for day_checks in checks:
            for c in day_checks:
                final.extend(c.slots)
                out = {"provider_id": c.provider_id, "date": c.date, "status": c.status, "removed": c.removed}
                if isinstance(c, Skipped):
                    out["reason"] = c.reason
                    name = providers[c.provider_id].display_name
                    result["warnings"].append(f"conflict check skipped for provider {name} on {c.date} ({c.reason})")
                    skipped.append({"provider_id": str(c.provider_id), "date": c.date.isoformat(), "reason": c.reason})
                result["conflict_checks"].append(out)
        final = _first_per_start(sorted(final, key=slot_sort_key))

        briefs = {pid: provider_brief(p) for pid, p in providers.items()}
        rows = [self._slot_out(s, briefs[s.provider_id]) for s in final]
        by_date: dict[str, list[dict]] = {}
        for r in rows:
            by_date.setdefault(r["date"].isoformat(), []).append(r)

        with_slots = {s.provider_id for s in final}
        result.update(
            total_slots=len(rows),
            slots=rows[: settings.MAX_RESPONSE_SLOTS],
            slots_by_date=by_date,
            providers=sorted((briefs[pid] for pid in by_provider), key=lambda b: (b["name"], str(b["id"]))),
        )
        if rows:
            result["message"] = f"Found {len(rows)} available slots across {len(with_slots)} providers"
        else:
            result["message"] = f"Found {len(by_provider)} providers accepting this insurance, but no availability in the requested dates"
        result["debug"].update(
            providers_considered=len(by_provider),
            conflict_check_skipped=skipped,
            truncated=len(rows) > settings.MAX_RESPONSE_SLOTS,
        )
        logger.info(f"Merged availability for payer {q.payer_id} {start}..{end}: {len(rows)} slots, {len(with_slots)} providers, {len(skipped)} unchecked")
        return result

    def _provider_slots(self, provider, entries: list[NetworkEntry], blocks_by, exceptions_by, booking, payer, q: MergedAvailabilityRequest, now: datetime) -> dict[date, list[CandidateSlot]]:
        pid = provider.id
        tz_name = provider_timezone(provider)
        tz = ZoneInfo(tz_name)
        buffer = q.buffer_minutes
        if buffer is None:
            buffer = booking.buffer_minutes if booking is not None and booking.buffer_minutes is not None else settings.DEFAULT_BUFFER_MINUTES

        earliest = None
        last_day = None
        if booking is not None:
            if booking.minimum_notice_hours is not None:
                earliest = now + timedelta(hours=booking.minimum_notice_hours)
            if booking.advance_booking_days is not None:
                last_day = now.astimezone(tz).date() + timedelta(days=booking.advance_booking_days)

        out: dict[date, list[CandidateSlot]] = {}
        for day in _days(q.range_start, q.range_end):
            if payer.effective_date is not None and day < payer.effective_date:
                continue
            if last_day is not None and day > last_day:
                continue
            active = [e for e in entries if e.is_effective_on(day)]
            if not active:
                continue

            direct = next((e for e in active if e.kind == "direct"), None)
            own = resolve_day_windows(blocks_by.get(pid, ()), exceptions_by.get(pid, ()), day)
            if not own:
                continue

            # (window, attending) pairs; attending is None when the provider books alone
            windows: list[tuple[TimeWindow, uuid.UUID | None]]
            if all(e.kind == "supervised" and e.requires_co_visit for e in active):
                windows = []
                for e in active:
                    attending = resolve_day_windows(blocks_by.get(e.billing_provider_id, ()), exceptions_by.get(e.billing_provider_id, ()), day)
                    windows.extend((w, e.billing_provider_id) for w in intersect_windows(own, attending))
            else:
                windows = [(w, None) for w in own]

            label = direct or active[0]
            # one candidate per (start, attending); duplicates are dropped after conflict checks
            seen: set[tuple[int, uuid.UUID | None]] = set()
            slots: list[CandidateSlot] = []
            for w, attending_id in windows:
                for minute in generate_slot_times(w, q.appointment_duration, buffer):
                    if (minute, attending_id) in seen:
                        continue
                    if earliest is not None and wall_clock(day, minute, tz) < earliest:
                        continue
                    seen.add((minute, attending_id))
                    slots.append(CandidateSlot(
                        date=day,
                        start=minute,
                        duration=q.appointment_duration,
                        provider_id=pid,
                        provider_name=provider.display_name,
                        timezone=tz_name,
                        relationship_kind=label.kind,
                        billing_provider_id=attending_id or label.billing_provider_id,
                        co_visit_provider_id=attending_id,
                    ))
            if slots:
                out[day] = sorted(slots, key=lambda s: (s.start, str(s.co_visit_provider_id or "")))
            logger.debug(f"Provider {pid} on {day} (dow={day_of_week(day)}): {len(windows)} windows, {len(slots)} slots, buffer={buffer}")
        return out

    @staticmethod
    def _slot_out(s: CandidateSlot, brief: dict) -> dict:
        return {
            "date": s.date,
            "time": s.time,
            "provider_id": s.provider_id,
            "provider_name": s.provider_name,
            "duration": s.duration,
            "relationship_kind": s.relationship_kind,
            "billing_provider_id": s.billing_provider_id,
            "co_visit_provider_id": s.co_visit_provider_id,
            "provider": brief,
        }
