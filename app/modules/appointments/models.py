import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, TIMESTAMP, ForeignKey
from app.core.base import Base, TimestampedTenantMixin

# Statuses that no longer occupy the provider's calendar
NON_BLOCKING_STATUSES = ("cancelled", "no_show")

class Appointment(Base, TimestampedTenantMixin):
    provider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("provider.id"), index=True)
    payer_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("payer.id"), nullable=True)
    patient_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)  # patient records live in the CRM

    status: Mapped[str] = mapped_column(String(24), default="scheduled")  # scheduled, confirmed, completed, cancelled, no_show
    start_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), index=True)
    end_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    # Mirror of the EHR record once synced
    intakeq_appointment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
