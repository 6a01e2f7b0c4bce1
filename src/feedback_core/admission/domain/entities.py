"""
Admission Domain Entities
==========================

Pure Python domain entities for quota admission.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class CounterTouch:
    """A (quota, period) counter incremented by one admission attempt."""
    quota_id: str
    period_key: str


@dataclass
class QuotaPeriodCounter:
    """
    Running count of admitted submissions for one quota period.

    One row per (quota_id, period_key).
    """
    quota_id: str
    period_key: str
    count: int = 0

    def __post_init__(self):
        """Validate counter on initialization."""
        if self.count < 0:
            raise ValueError("count cannot be negative")


@dataclass(frozen=True)
class IncrementOutcome:
    """Result of one atomic increment-if-below-limit call."""
    incremented: bool
    count: int  # value after the call (unchanged when refused)


@dataclass
class AdmissionDecision:
    """
    Accept/reject decision for one submission.

    Rejection is a result, not an error: callers branch on ``accepted``.
    ``counted`` lists the counters this admission incremented, which is the
    set a later cancellation must release.
    """
    accepted: bool
    exhausted_quota_id: Optional[str] = None
    counted: List[CounterTouch] = field(default_factory=list)
    reason: Optional[str] = None

    @classmethod
    def unrestricted(cls) -> "AdmissionDecision":
        """Decision for a form with no active quotas."""
        return cls(accepted=True, reason="no active quotas")

    def to_dict(self) -> dict:
        """Convert to dictionary for the host's result record."""
        return {
            "accepted": self.accepted,
            "exhausted_quota_id": self.exhausted_quota_id,
            "counted": [
                {"quota_id": t.quota_id, "period_key": t.period_key}
                for t in self.counted
            ],
            "reason": self.reason,
        }


@dataclass(frozen=True)
class QuotaUsage:
    """Current usage of one quota in the period containing a given instant."""
    quota_id: str
    label: Optional[str]
    period_key: str
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        """Admissions left in this period."""
        return max(0, self.limit - self.used)

    @property
    def percentage(self) -> Optional[float]:
        """Percentage of the limit consumed, None for a zero limit."""
        if self.limit <= 0:
            return None
        return round((self.used / self.limit) * 100, 1)
