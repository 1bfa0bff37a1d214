"""
Shared factories for test data.

Rows are plain namespaces carrying the same attributes as the ORM models, so
the scheduling core and the services can be exercised without a database.
"""

import asyncio
import uuid
from datetime import date, datetime, time, timezone
from types import SimpleNamespace

from app.platform.ports.ehr import BookedInterval, EhrUnavailable

DENVER = "America/Denver"
MONDAY = date(2025, 6, 2)


def make_provider(first="Anna", last="Avery", **kw):
    p = SimpleNamespace(
        id=kw.pop("id", uuid.uuid4()),
        first_name=first,
        last_name=last,
        title=kw.pop("title", "MD"),
        role=kw.pop("role", "attending"),
        is_active=kw.pop("is_active", True),
        is_bookable=kw.pop("is_bookable", True),
        accepts_new_patients=kw.pop("accepts_new_patients", True),
        intakeq_practitioner_id=kw.pop("intakeq_practitioner_id", None),
        languages_spoken=kw.pop("languages_spoken", ["English"]),
        timezone=kw.pop("timezone", DENVER),
        **kw,
    )
    p.display_name = f"{first} {last}"
    return p


def make_block(provider_id, day_of_week=1, start="09:00", end="17:00", **kw):
    return SimpleNamespace(
        id=kw.pop("id", uuid.uuid4()),
        provider_id=provider_id,
        day_of_week=day_of_week,
        start_time=hhmm(start),
        end_time=hhmm(end),
        is_recurring=kw.pop("is_recurring", True),
        effective_date=kw.pop("effective_date", None),
        expiration_date=kw.pop("expiration_date", None),
    )


def make_exception(provider_id, exception_date, exception_type="unavailable", start=None, end=None, **kw):
    return SimpleNamespace(
        id=kw.pop("id", uuid.uuid4()),
        provider_id=provider_id,
        exception_date=exception_date,
        end_date=kw.pop("end_date", None),
        exception_type=exception_type,
        start_time=hhmm(start) if start else None,
        end_time=hhmm(end) if end else None,
        reason=kw.pop("reason", None),
        created_at=kw.pop("created_at", datetime(2025, 1, 1, tzinfo=timezone.utc)),
    )


def make_payer(**kw):
    return SimpleNamespace(
        id=kw.pop("id", uuid.uuid4()),
        name=kw.pop("name", "Utah Medicaid"),
        credentialing_status=kw.pop("credentialing_status", "approved"),
        effective_date=kw.pop("effective_date", None),
        is_bookable=kw.pop("is_bookable", True),
    )


def hhmm(value: str) -> time:
    h, m = value.split(":")
    return time(int(h), int(m))


class FakeEhr:
    """In-memory EHR calendar keyed by (practitioner id, date)."""

    name = "fake"

    def __init__(self, busy=None, fail_for=(), delay: float = 0.0):
        self.busy = busy or {}
        self.fail_for = set(fail_for)
        self.delay = delay
        self.calls = []

    async def get_appointments_for_date(self, practitioner_external_id, day, tz=None):
        self.calls.append((practitioner_external_id, day))
        if self.delay:
            await asyncio.sleep(self.delay)
        if practitioner_external_id in self.fail_for:
            raise EhrUnavailable(f"calendar for {practitioner_external_id} unavailable")
        return list(self.busy.get((practitioner_external_id, day), []))

    async def aclose(self):
        return None


def booked(day: date, start: str, end: str, tz: str = DENVER, source="ehr") -> BookedInterval:
    from zoneinfo import ZoneInfo
    zone = ZoneInfo(tz)
    s, e = hhmm(start), hhmm(end)
    return BookedInterval(
        start=datetime(day.year, day.month, day.day, s.hour, s.minute, tzinfo=zone),
        end=datetime(day.year, day.month, day.day, e.hour, e.minute, tzinfo=zone),
        source=source,
    )


