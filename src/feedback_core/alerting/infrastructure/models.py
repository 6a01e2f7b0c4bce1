"""
Alerting Infrastructure Models
==============================

SQLAlchemy ORM models for CTL alerts.

``open_key`` carries the correlation key while the alert is open and is
cleared on resolution. Its unique constraint is what makes
find-or-create atomic: NULLs do not collide, so any number of resolved
alerts may share a key while only one open alert can hold it.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Float, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from feedback_core.config import AlertStatus
from feedback_core.infrastructure.database import Base


class CTLAlertModel(Base):
    """
    Database model for CTLAlert entity.

    Maps to the 'ctl_alerts' table.
    """
    __tablename__ = "ctl_alerts"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Ownership
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    form_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    submission_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Deduplication
    correlation_key: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    open_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True, unique=True)

    # Alert details
    alert_level: Mapped[str] = mapped_column(String(20), nullable=False)
    score_value: Mapped[float] = mapped_column(Float, nullable=False)
    score_type: Mapped[str] = mapped_column(String(50), nullable=False, default="sentiment")
    sentiment: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=AlertStatus.OPEN, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Ticket link (set at most once)
    ticket_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Resolution
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
