import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo
from app.core.config import settings
from app.modules.availability.schedule import TimeWindow, format_minutes


def provider_timezone(provider) -> str:
    return getattr(provider, "timezone", None) or settings.PRACTICE_TIMEZONE


def generate_slot_times(window: TimeWindow, duration: int, buffer: int = 15) -> list[int]:
    """Start minutes of every ``duration``-long slot that fits in ``window``.

    Slots start at ``window.start`` and are ``duration + buffer`` apart. A slot
    that would run past ``window.end`` is dropped, never shortened.
    """
    if duration <= 0:
        raise ValueError("duration must be positive")
    if buffer < 0:
        raise ValueError("buffer must be >= 0")
    step = duration + buffer
    out = []
    cur = window.start
    while cur + duration <= window.end:
        out.append(cur)
        cur += step
    return out


def intersect_windows(a: list[TimeWindow], b: list[TimeWindow]) -> list[TimeWindow]:
    out = []
    for wa in a:
        for wb in b:
            w = wa.intersect(wb)
            if w is not None:
                out.append(w)
    return sorted(set(out))


def wall_clock(day: date, minute: int, tz: ZoneInfo) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=tz) + timedelta(minutes=minute)


@dataclass(frozen=True)
class CandidateSlot:
    date: date
    start: int  # minutes past midnight, provider wall clock
    duration: int
    provider_id: uuid.UUID
    provider_name: str
    timezone: str
    relationship_kind: str = "direct"
    billing_provider_id: uuid.UUID | None = None
    co_visit_provider_id: uuid.UUID | None = None

    @property
    def end(self) -> int:
        return self.start + self.duration

    @property
    def time(self) -> str:
        return format_minutes(self.start)

    def interval(self) -> tuple[datetime, datetime]:
        tz = ZoneInfo(self.timezone)
        return wall_clock(self.date, self.start, tz), wall_clock(self.date, self.end, tz)

    def overlaps(self, busy_start: datetime, busy_end: datetime) -> bool:
        start, end = self.interval()
        return start < busy_end and end > busy_start
