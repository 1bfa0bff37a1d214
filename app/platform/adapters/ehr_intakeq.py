import logging
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo
import httpx
from app.core.config import settings
from app.platform.ports.ehr import EhrAppointmentsPort, BookedInterval, EhrUnavailable

log = logging.getLogger("ehr.intakeq")

CANCELLED_STATUSES = {"cancelled", "canceled", "deleted"}
DEFAULT_LENGTH = timedelta(minutes=60)  # IntakeQ omits EndDate on some legacy rows


def _from_epoch_ms(value, tz: ZoneInfo) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=tz)


class IntakeQClient(EhrAppointmentsPort):
    name = "intakeq"

    def __init__(self, api_key: str, base_url: str | None = None, *, timeout: float | None = None, max_connections: int | None = None, transport: httpx.AsyncBaseTransport | None = None):
        if not api_key:
            raise ValueError("IntakeQ API key is required")
        self.base_url = (base_url or settings.INTAKEQ_BASE_URL).rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-Auth-Key": api_key, "Content-Type": "application/json"},
            timeout=timeout or settings.EHR_TIMEOUT_SECONDS,
            limits=httpx.Limits(max_connections=max_connections or settings.EHR_MAX_CONCURRENCY),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _list_appointments(self, start: date, end: date) -> list[dict]:
        try:
            response = await self.client.get("/appointments", params={"startDate": start.isoformat(), "endDate": end.isoformat()})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise EhrUnavailable(f"IntakeQ returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise EhrUnavailable(f"IntakeQ request failed: {e.__class__.__name__}") from e
        except ValueError as e:
            raise EhrUnavailable("IntakeQ returned a non-JSON body") from e
        if not isinstance(data, list):
            raise EhrUnavailable("IntakeQ appointments payload is not a list")
        return data

    async def get_appointments_for_date(self, practitioner_external_id: str, day: date, tz: str | None = None) -> list[BookedInterval]:
        zone = ZoneInfo(tz or settings.PRACTICE_TIMEZONE)
        # IntakeQ filters on UTC dates; widen by a day and cut on the local day below
        rows = await self._list_appointments(day - timedelta(days=1), day + timedelta(days=1))
        day_start = datetime(day.year, day.month, day.day, tzinfo=zone)
        day_end = day_start + timedelta(days=1)

        out: list[BookedInterval] = []
        for row in rows:
            if str(row.get("PractitionerId")) != str(practitioner_external_id):
                continue
            if str(row.get("Status", "")).lower() in CANCELLED_STATUSES:
                continue
            try:
                start = _from_epoch_ms(row.get("StartDate"), zone)
                end = _from_epoch_ms(row.get("EndDate"), zone)
            except (TypeError, ValueError, OverflowError):
                log.warning(f"Skipping IntakeQ appointment {row.get('Id')} with unreadable dates")
                continue
            if start is None:
                continue
            if end is None or end <= start:
                end = start + DEFAULT_LENGTH
            if start < day_end and end > day_start:
                out.append(BookedInterval(start=start, end=end, source=self.name, external_id=str(row.get("Id")) if row.get("Id") is not None else None))

        log.debug(f"IntakeQ practitioner {practitioner_external_id}: {len(out)} appointments on {day}")
        return sorted(out, key=lambda b: (b.start, b.end))
