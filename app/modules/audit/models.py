import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, TIMESTAMP, text, JSON
from app.core.base import Base, TimestampedTenantMixin

class AuditEvent(Base, TimestampedTenantMixin):
    # who / tenant
    actor_user_id: Mapped[uuid.UUID] = mapped_column()
    # What happened
    action: Mapped[str] = mapped_column(String(24))  # create | delete | update
    resource_type: Mapped[str] = mapped_column(String(48), index=True)  # availability_block | availability_exception | ...
    resource_id: Mapped[str] = mapped_column(String(64), index=True)
    provider_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)  # whose calendar changed
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # snapshot of the written row
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(256), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"))
