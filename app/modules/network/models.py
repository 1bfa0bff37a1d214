import uuid
from datetime import date
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Date, ForeignKey, CheckConstraint
from app.core.base import Base, TimestampedTenantMixin

# Direct contract: the provider itself is in-network with the payer
class ProviderPayerNetwork(Base, TimestampedTenantMixin):
    __tablename__ = "provider_payer_network"
    provider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("provider.id"), index=True)
    payer_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("payer.id"), index=True)
    status: Mapped[str] = mapped_column(String(24), default="in_network")  # in_network | pending | terminated
    effective_date: Mapped[date] = mapped_column(Date)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

# Rendering provider (often a resident) sees the payer's patients under an attending's contract
class SupervisionRelationship(Base, TimestampedTenantMixin):
    __tablename__ = "supervision_relationship"
    __table_args__ = (
        CheckConstraint("rendering_provider_id <> billing_provider_id", name="no_self_supervision"),
    )
    rendering_provider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("provider.id"), index=True)
    billing_provider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("provider.id"), index=True)
    payer_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("payer.id"), index=True)
    status: Mapped[str] = mapped_column(String(24), default="active")  # active | inactive
    supervision_level: Mapped[str] = mapped_column(String(32), default="sign_off_only")  # none | sign_off_only | first_visit_in_person | co_visit_required
    requires_co_visit: Mapped[bool] = mapped_column(default=False)
    effective_date: Mapped[date] = mapped_column(Date)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
