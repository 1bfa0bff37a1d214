from datetime import date
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Date
from app.core.base import Base, TimestampedTenantMixin

# Credentialing lifecycle: not_started -> in_progress -> waiting_on_payer -> approved | denied | blocked | withdrawn
# (on_pause may interrupt any non-terminal state)
CREDENTIALING_STATUSES = ("not_started", "in_progress", "waiting_on_payer", "on_pause", "approved", "denied", "blocked", "withdrawn")
TERMINAL_NEGATIVE_STATUSES = frozenset({"denied", "blocked", "withdrawn"})

class Payer(Base, TimestampedTenantMixin):
    __tablename__ = "payer"
    name: Mapped[str] = mapped_column(String(160), index=True)
    payer_type: Mapped[str] = mapped_column(String(24), default="insurance")  # insurance | self_pay
    state: Mapped[str | None] = mapped_column(String(2), nullable=True)
    credentialing_status: Mapped[str] = mapped_column(String(24), default="not_started")
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    requires_attending: Mapped[bool] = mapped_column(default=False)

    @property
    def is_bookable(self) -> bool:
        return self.credentialing_status not in TERMINAL_NEGATIVE_STATUSES
