import logging
from app.core.config import settings
from app.core.redis import redis_manager
from app.platform.ports.ehr import EhrAppointmentsPort
from app.platform.adapters.ehr_intakeq import IntakeQClient
from app.platform.adapters.ehr_cache_redis import RedisCachedEhr

log = logging.getLogger("platform.registry")

class ProviderRegistry:
    _ehr: EhrAppointmentsPort | None = None
    _ehr_resolved: bool = False

    @classmethod
    def ehr_client(cls) -> EhrAppointmentsPort | None:
        """EHR adapter for conflict checks, or None when no EHR is configured (checks fail open)."""
        if not cls._ehr_resolved:
            cls._ehr_resolved = True
            prov = (settings.EHR_PROVIDER or "none").lower()
            if prov == "intakeq" and settings.INTAKEQ_API_KEY:
                ehr: EhrAppointmentsPort = IntakeQClient(settings.INTAKEQ_API_KEY, settings.INTAKEQ_BASE_URL)
                if settings.EHR_CACHE_PROVIDER == "redis":
                    ehr = RedisCachedEhr(ehr, redis_manager, settings.EHR_CACHE_TTL_SECONDS)
                cls._ehr = ehr
            elif prov == "intakeq":
                log.warning("EHR_PROVIDER=intakeq but INTAKEQ_API_KEY is not set; conflict checks will be skipped")
        return cls._ehr

    @classmethod
    async def close(cls) -> None:
        if cls._ehr is not None:
            await cls._ehr.aclose()
        cls._ehr = None
        cls._ehr_resolved = False

registry = ProviderRegistry()
