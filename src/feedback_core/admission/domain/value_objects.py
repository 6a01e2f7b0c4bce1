"""
Admission Value Objects
========================

Immutable value objects for the admission domain.

Quotas are tenant configuration: the core reads them and never mutates
them. Period keys are pure functions of the period type and the event
instant.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from feedback_core.config import PeriodType, VALID_PERIOD_TYPES


class Quota(BaseModel):
    """
    Ceiling on accepted submissions per period for a form.

    Loaded from configuration; read-only to the core.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Quota identifier")
    tenant_id: str = Field(..., min_length=1)
    form_id: str = Field(..., min_length=1)
    limit_value: int = Field(..., ge=0, description="Maximum admitted submissions per period")
    period_type: str = Field(default=PeriodType.TOTAL)
    is_active: bool = Field(default=True)
    label: Optional[str] = Field(default=None, description="Display name")

    @field_validator("id", "tenant_id", "form_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        """Accept integer ids from YAML and store them as strings."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("period_type")
    @classmethod
    def validate_period_type(cls, v: str) -> str:
        """Ensure the period type is one we can derive keys for."""
        if v not in VALID_PERIOD_TYPES:
            raise ValueError(f"period_type must be one of {VALID_PERIOD_TYPES}")
        return v

    @property
    def evaluation_order(self) -> tuple:
        """Tightest limit first; ties broken by id so ordering is stable."""
        return (self.limit_value, self.id)


class PeriodKeyCalculator:
    """
    Pure functions for deriving counter bucket identifiers.

    The key depends only on the event timestamp, never on wall-clock time
    at call time, so admissions replayed for the same instant land in the
    same bucket.
    """

    @staticmethod
    def to_utc(instant: datetime) -> datetime:
        """Normalise an instant to UTC; naive datetimes are taken as UTC."""
        if instant.tzinfo is None:
            return instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(timezone.utc)

    @staticmethod
    def period_key(period_type: str, instant: datetime) -> str:
        """
        Compute the counter bucket for ``instant``.

        Examples:
            day   -> "day:2026-10-18"
            week  -> "week:2026-W42"
            month -> "month:2026-10"
            total -> "total"
        """
        utc = PeriodKeyCalculator.to_utc(instant)

        if period_type == PeriodType.DAY:
            return f"day:{utc.date().isoformat()}"
        if period_type == PeriodType.WEEK:
            iso_year, iso_week, _ = utc.isocalendar()
            return f"week:{iso_year}-W{iso_week:02d}"
        if period_type == PeriodType.MONTH:
            return f"month:{utc.year:04d}-{utc.month:02d}"
        if period_type == PeriodType.TOTAL:
            return "total"
        raise ValueError(f"Unknown period type: {period_type}")
