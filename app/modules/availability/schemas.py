import uuid
import datetime as dt
from typing import Literal
from pydantic import BaseModel, Field, model_validator
from app.core.config import settings

# Admin schedule editing

class RecurringBlockCreate(BaseModel):
    day_of_week: int = Field(ge=0, le=6)  # 0=Sunday
    start_time: dt.time
    end_time: dt.time
    effective_date: dt.date | None = None
    expiration_date: dt.date | None = None

    @model_validator(mode="after")
    def _check(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.effective_date and self.expiration_date and self.expiration_date < self.effective_date:
            raise ValueError("expiration_date must not precede effective_date")
        return self

class RecurringBlockOut(RecurringBlockCreate):
    id: uuid.UUID
    org_id: uuid.UUID
    provider_id: uuid.UUID
    is_recurring: bool
    class Config: from_attributes = True

class ExceptionCreate(BaseModel):
    exception_date: dt.date
    end_date: dt.date | None = None
    exception_type: Literal["unavailable", "custom_hours", "partial_block"]
    start_time: dt.time | None = None
    end_time: dt.time | None = None
    reason: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _check(self):
        if self.end_date and self.end_date < self.exception_date:
            raise ValueError("end_date must not precede exception_date")
        has_start, has_end = self.start_time is not None, self.end_time is not None
        if self.exception_type in ("custom_hours", "partial_block") and not (has_start and has_end):
            raise ValueError(f"{self.exception_type} requires start_time and end_time")
        if self.exception_type == "unavailable" and has_start != has_end:
            raise ValueError("unavailable takes both start_time and end_time, or neither for the whole day")
        if has_start and has_end and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

class ExceptionOut(ExceptionCreate):
    id: uuid.UUID
    org_id: uuid.UUID
    provider_id: uuid.UUID
    class Config: from_attributes = True

class WindowOut(BaseModel):
    start_time: str
    end_time: str

class DayScheduleOut(BaseModel):
    provider_id: uuid.UUID
    date: dt.date
    day_of_week: int
    rule: str
    windows: list[WindowOut]
    exception_ids: list[uuid.UUID] = []

# Patient booking

class MergedAvailabilityRequest(BaseModel):
    payer_id: uuid.UUID
    date: dt.date | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    appointment_duration: int = Field(default_factory=lambda: settings.DEFAULT_APPOINTMENT_MINUTES, ge=5, le=480)
    buffer_minutes: int | None = Field(default=None, ge=0, le=240)
    provider_id: uuid.UUID | None = None

    @model_validator(mode="after")
    def _check_range(self):
        first = self.date or self.start_date
        if first is None:
            raise ValueError("date or start_date is required")
        last = self.end_date or self.date or first
        if last < first:
            raise ValueError("end_date must not precede the start date")
        if (last - first).days + 1 > settings.MAX_RANGE_DAYS:
            raise ValueError(f"date range may span at most {settings.MAX_RANGE_DAYS} days")
        return self

    @property
    def range_start(self) -> dt.date:
        return self.date or self.start_date

    @property
    def range_end(self) -> dt.date:
        return self.end_date or self.date or self.start_date

class ProviderBrief(BaseModel):
    id: uuid.UUID
    name: str
    title: str | None = None
    role: str | None = None
    accepts_new_patients: bool = True
    languages_spoken: list[str] = []

class SlotOut(BaseModel):
    date: dt.date
    time: str
    provider_id: uuid.UUID
    provider_name: str
    duration: int
    relationship_kind: Literal["direct", "supervised"]
    billing_provider_id: uuid.UUID | None = None
    co_visit_provider_id: uuid.UUID | None = None
    provider: ProviderBrief

class ConflictCheckOut(BaseModel):
    provider_id: uuid.UUID
    date: dt.date
    status: Literal["filtered", "skipped"]
    reason: str | None = None
    removed: int = 0

class DateRange(BaseModel):
    start_date: dt.date
    end_date: dt.date

class MergedAvailabilityOut(BaseModel):
    total_slots: int
    date_range: DateRange
    slots: list[SlotOut]
    slots_by_date: dict[str, list[SlotOut]]
    providers: list[ProviderBrief]
    conflict_checks: list[ConflictCheckOut]
    message: str
    warnings: list[str] = []
    debug: dict = {}

class NetworkEntryOut(BaseModel):
    provider: ProviderBrief
    relationship_kind: Literal["direct", "supervised"]
    billing_provider_id: uuid.UUID
    requires_co_visit: bool
    supervision_level: str | None = None
    effective_date: dt.date
    expiration_date: dt.date | None = None
