"""Resolve a provider's bookable windows for one calendar date.

Everything here works on provider wall-clock minutes past midnight for the
date in question; nothing is normalised to UTC, so a window never drifts
across a day boundary.

Exceptions are applied as a precedence chain, first applicable rule wins:

1. ``unavailable`` without times blocks the whole day.
2. ``custom_hours`` replaces the weekly blocks with its own window
   (newest exception wins when several cover the date).
3. ``partial_block`` (or ``unavailable`` with times) carves its interval out
   of the weekly blocks.
4. Otherwise the weekly blocks apply as stored.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Iterable, Sequence

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60

RULE_FULL_DAY = "full_day_unavailable"
RULE_CUSTOM_HOURS = "custom_hours"
RULE_PARTIAL_BLOCK = "partial_block"
RULE_RECURRING = "recurring"


def minutes_of(t: time) -> int:
    return t.hour * 60 + t.minute


def format_minutes(m: int) -> str:
    return f"{m // 60:02d}:{m % 60:02d}"


def day_of_week(d: date) -> int:
    """0=Sunday .. 6=Saturday, the convention schedule rows are stored in."""
    return (d.weekday() + 1) % 7


@dataclass(frozen=True, order=True)
class TimeWindow:
    start: int  # minutes past midnight
    end: int

    @classmethod
    def from_times(cls, start: time, end: time) -> "TimeWindow":
        return cls(minutes_of(start), minutes_of(end))

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.start < other.end and self.end > other.start

    def intersect(self, other: "TimeWindow") -> "TimeWindow | None":
        w = TimeWindow(max(self.start, other.start), min(self.end, other.end))
        return None if w.is_empty else w

    def subtract(self, blocked: "TimeWindow") -> list["TimeWindow"]:
        if not self.overlaps(blocked):
            return [self]
        pieces = [TimeWindow(self.start, blocked.start), TimeWindow(blocked.end, self.end)]
        return [p for p in pieces if not p.is_empty]

    def __str__(self) -> str:
        return f"{format_minutes(self.start)}-{format_minutes(self.end)}"


@dataclass
class DaySchedule:
    day: date
    windows: list[TimeWindow]
    rule: str
    exception_ids: list = field(default_factory=list)


def blocks_for_day(blocks: Iterable, day: date) -> list[TimeWindow]:
    """Weekly blocks that apply on ``day``, ordered by start. Overlaps are kept as-is."""
    dow = day_of_week(day)
    out = []
    for b in blocks:
        if b.day_of_week != dow or not getattr(b, "is_recurring", True):
            continue
        if b.effective_date is not None and day < b.effective_date:
            continue
        if b.expiration_date is not None and day > b.expiration_date:
            continue
        w = TimeWindow.from_times(b.start_time, b.end_time)
        if w.is_empty:
            logger.warning(f"Ignoring empty availability block {getattr(b, 'id', '?')} ({w})")
            continue
        out.append(w)
    return sorted(out)


def exceptions_covering(exceptions: Iterable, day: date) -> list:
    return [
        e for e in exceptions
        if e.exception_date == day or (e.end_date is not None and e.exception_date <= day <= e.end_date)
    ]


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _newest_first(exceptions: Sequence) -> list:
    def created(e):
        ts = getattr(e, "created_at", None)
        if ts is None:
            return _EPOCH
        return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
    # id breaks ties between rows created in the same instant
    return sorted(exceptions, key=lambda e: (created(e), str(getattr(e, "id", ""))), reverse=True)


def _has_times(e) -> bool:
    return e.start_time is not None and e.end_time is not None


def subtract_all(windows: Iterable[TimeWindow], blocked: Iterable[TimeWindow]) -> list[TimeWindow]:
    remaining = list(windows)
    for b in blocked:
        remaining = [piece for w in remaining for piece in w.subtract(b)]
    return sorted(remaining)


def resolve_day(blocks: Iterable, exceptions: Iterable, day: date) -> DaySchedule:
    recurring = blocks_for_day(blocks, day)
    covering = exceptions_covering(exceptions, day)

    full_day = [e for e in covering if e.exception_type == "unavailable" and not _has_times(e)]
    if full_day:
        return DaySchedule(day, [], RULE_FULL_DAY, [e.id for e in full_day])

    custom = []
    for e in covering:
        if e.exception_type != "custom_hours":
            continue
        if not _has_times(e) or TimeWindow.from_times(e.start_time, e.end_time).is_empty:
            logger.warning(f"custom_hours exception {getattr(e, 'id', '?')} on {day} has no usable hours; ignored")
            continue
        custom.append(e)
    if custom:
        winner = _newest_first(custom)[0]
        return DaySchedule(day, [TimeWindow.from_times(winner.start_time, winner.end_time)], RULE_CUSTOM_HOURS, [winner.id])

    carving = [
        e for e in covering
        if e.exception_type in ("partial_block", "unavailable") and _has_times(e)
    ]
    if carving:
        blocked = [TimeWindow.from_times(e.start_time, e.end_time) for e in carving]
        return DaySchedule(day, subtract_all(recurring, blocked), RULE_PARTIAL_BLOCK, [e.id for e in carving])

    return DaySchedule(day, recurring, RULE_RECURRING)


def resolve_day_windows(blocks: Iterable, exceptions: Iterable, day: date) -> list[TimeWindow]:
    return resolve_day(blocks, exceptions, day).windows
