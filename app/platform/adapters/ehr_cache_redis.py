import logging
from datetime import date, datetime
from redis.exceptions import RedisError
from app.core.redis import RedisManager
from app.platform.ports.ehr import EhrAppointmentsPort, BookedInterval, EhrUnavailable

log = logging.getLogger("ehr.cache")

STALE_MULTIPLIER = 12  # stale copies outlive fresh ones; served only when the EHR is down


def _dump(items: list[BookedInterval]) -> list[dict]:
    return [{"start": b.start.isoformat(), "end": b.end.isoformat(), "source": b.source, "external_id": b.external_id} for b in items]


def _load(rows: list[dict]) -> list[BookedInterval]:
    return [BookedInterval(start=datetime.fromisoformat(r["start"]), end=datetime.fromisoformat(r["end"]), source=r.get("source", "ehr"), external_id=r.get("external_id")) for r in rows]


class RedisCachedEhr(EhrAppointmentsPort):
    """Read-through cache around an EHR adapter, with stale fallback on EHR failure."""

    def __init__(self, inner: EhrAppointmentsPort, redis: RedisManager, ttl_seconds: int):
        self.inner = inner
        self.redis = redis
        self.ttl = ttl_seconds
        self.name = inner.name

    def _key(self, practitioner_external_id: str, day: date) -> str:
        return f"ehr:{self.inner.name}:{practitioner_external_id}:{day.isoformat()}"

    async def _get(self, key: str):
        if not self.redis.connected:
            return None
        try:
            return await self.redis.get_json(key)
        except RedisError:
            log.warning(f"Cache read failed for {key}", exc_info=True)
            return None

    async def _put(self, key: str, items: list[BookedInterval]):
        if not self.redis.connected:
            return
        try:
            payload = _dump(items)
            await self.redis.set_json(key, payload, self.ttl)
            await self.redis.set_json(f"{key}:stale", payload, self.ttl * STALE_MULTIPLIER)
        except RedisError:
            log.warning(f"Cache write failed for {key}", exc_info=True)

    async def get_appointments_for_date(self, practitioner_external_id: str, day: date, tz: str | None = None) -> list[BookedInterval]:
        key = self._key(practitioner_external_id, day)
        cached = await self._get(key)
        if cached is not None:
            return _load(cached)
        try:
            items = await self.inner.get_appointments_for_date(practitioner_external_id, day, tz)
        except EhrUnavailable:
            stale = await self._get(f"{key}:stale")
            if stale is None:
                raise
            log.warning(f"EHR unavailable; serving stale appointments for {key}")
            return _load(stale)
        await self._put(key, items)
        return items

    async def aclose(self) -> None:
        await self.inner.aclose()
