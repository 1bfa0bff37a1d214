from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class BookedInterval:
    start: datetime  # tz-aware
    end: datetime
    source: str = "ehr"  # ehr | local
    external_id: str | None = None


class EhrUnavailable(Exception):
    """The EHR could not answer; callers decide whether to fail open."""


@runtime_checkable
class EhrAppointmentsPort(Protocol):
    name: str

    async def get_appointments_for_date(self, practitioner_external_id: str, day: date, tz: str | None = None) -> list[BookedInterval]: ...

    async def aclose(self) -> None: ...
