from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, JSON
from app.core.base import Base, TimestampedTenantMixin

class Provider(Base, TimestampedTenantMixin):
    __tablename__ = "provider"
    first_name: Mapped[str] = mapped_column(String(80))
    last_name: Mapped[str] = mapped_column(String(80), index=True)
    title: Mapped[str | None] = mapped_column(String(40), nullable=True)  # MD, DO, PMHNP...
    role: Mapped[str | None] = mapped_column(String(40), nullable=True)   # attending, resident, therapist...

    is_active: Mapped[bool] = mapped_column(default=True)
    is_bookable: Mapped[bool] = mapped_column(default=True)
    accepts_new_patients: Mapped[bool] = mapped_column(default=True)

    # One identifier per integrated EHR
    intakeq_practitioner_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    athena_provider_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    languages_spoken: Mapped[list | None] = mapped_column(JSON, nullable=True)  # e.g. ["English", "Spanish"]
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)     # IANA name; None = practice tz

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
