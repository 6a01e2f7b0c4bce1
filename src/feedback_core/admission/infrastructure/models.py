"""
Admission Infrastructure Models
================================

SQLAlchemy ORM models for the admission module.

Quota definitions live in tenant configuration; only the period counters
are persisted by the core.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from feedback_core.infrastructure.database import Base


class QuotaPeriodCounterModel(Base):
    """
    Database model for QuotaPeriodCounter.

    Maps to the 'quota_period_counters' table. One row per
    (quota_id, period_key); rows are never deleted by the core.
    """
    __tablename__ = "quota_period_counters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    quota_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    period_key: Mapped[str] = mapped_column(String(64), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint("quota_id", "period_key", name="uq_quota_period_counter"),
        CheckConstraint("count >= 0", name="ck_quota_period_counter_nonnegative"),
    )
