"""
Alerting Domain Entities
========================

Close-the-loop (CTL) alerts and correlation results.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from feedback_core.config import AlertStatus, VALID_ALERT_LEVELS, VALID_ALERT_STATUSES


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CTLAlert:
    """
    Follow-up flag raised for a negative submission.

    At most one alert per correlation key is open at a time. An alert is
    never deleted by the core; humans resolve it.
    """

    tenant_id: str
    form_id: str
    submission_id: str
    correlation_key: str
    alert_level: str
    score_value: float
    sentiment: str

    id: str = field(default_factory=lambda: str(uuid4()))
    score_type: str = "sentiment"
    status: str = AlertStatus.OPEN
    notes: Optional[str] = None
    ticket_id: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        """Validate alert on initialization."""
        if self.alert_level not in VALID_ALERT_LEVELS:
            raise ValueError(f"alert_level must be one of {VALID_ALERT_LEVELS}")
        if self.status not in VALID_ALERT_STATUSES:
            raise ValueError(f"status must be one of {VALID_ALERT_STATUSES}")
        if not self.correlation_key:
            raise ValueError("correlation_key is required")

    @property
    def is_open(self) -> bool:
        """Check if the alert still awaits follow-up."""
        return self.status == AlertStatus.OPEN

    @property
    def has_ticket(self) -> bool:
        """Check if a ticket has been linked."""
        return self.ticket_id is not None

    def is_less_severe_than(self, score: float) -> bool:
        """True when ``score`` is more negative than the recorded one."""
        return score < self.score_value

    def mark_resolved(self, resolved_by: str, timestamp: Optional[datetime] = None) -> None:
        """Close the alert; a new one may then open for the same key."""
        self.status = AlertStatus.RESOLVED
        self.resolved_by = resolved_by
        self.resolved_at = timestamp or _utcnow()
        self.updated_at = self.resolved_at

    def to_dict(self) -> dict:
        """Convert to dictionary for the host's records."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "form_id": self.form_id,
            "submission_id": self.submission_id,
            "correlation_key": self.correlation_key,
            "alert_level": self.alert_level,
            "score_value": self.score_value,
            "score_type": self.score_type,
            "sentiment": self.sentiment,
            "status": self.status,
            "notes": self.notes,
            "ticket_id": self.ticket_id,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": self.resolved_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class CorrelationResult:
    """
    Outcome of correlating one classified submission.

    ``alert_created`` is True only for a newly opened alert; a duplicate
    attaches to the open alert and reports ``reused_existing``.
    """
    alert_created: bool
    alert_id: Optional[str] = None
    reused_existing: bool = False
    alert_level: Optional[str] = None
    ticket_id: Optional[str] = None
    correlation_key: Optional[str] = None

    @classmethod
    def no_alert(cls) -> "CorrelationResult":
        """Result for a submission that crosses no threshold."""
        return cls(alert_created=False)

    @property
    def alerted(self) -> bool:
        """True when the submission is attached to an open alert."""
        return self.alert_id is not None

    def to_dict(self) -> dict:
        return {
            "alert_created": self.alert_created,
            "alert_id": self.alert_id,
            "reused_existing": self.reused_existing,
            "alert_level": self.alert_level,
            "ticket_id": self.ticket_id,
            "correlation_key": self.correlation_key,
        }
