import uuid
from datetime import date, time
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Date, Time, ForeignKey, CheckConstraint
from app.core.base import Base, TimestampedTenantMixin

EXCEPTION_TYPES = ("unavailable", "custom_hours", "partial_block")

# Standing weekly commitment: day_of_week 0=Sun..6=Sat, provider wall-clock times
class ProviderAvailability(Base, TimestampedTenantMixin):
    __tablename__ = "provider_availability"
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="day_of_week_range"),
        CheckConstraint("end_time > start_time", name="block_not_empty"),
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("provider.id"), index=True)
    day_of_week: Mapped[int] = mapped_column(Integer)
    start_time: Mapped[time] = mapped_column(Time)
    end_time: Mapped[time] = mapped_column(Time)
    is_recurring: Mapped[bool] = mapped_column(default=True)
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

# Date-specific override of the weekly schedule; end_date makes it a range
class AvailabilityException(Base, TimestampedTenantMixin):
    __tablename__ = "availability_exception"
    provider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("provider.id"), index=True)
    exception_date: Mapped[date] = mapped_column(Date, index=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    exception_type: Mapped[str] = mapped_column(String(24))  # unavailable | custom_hours | partial_block
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

# Per-provider booking policy; null columns fall back to settings
class ProviderBookingSettings(Base, TimestampedTenantMixin):
    __tablename__ = "provider_booking_settings"
    provider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("provider.id"), unique=True)
    buffer_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    minimum_notice_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    advance_booking_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
