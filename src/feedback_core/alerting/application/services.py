"""
Alerting Application Services
=============================

Turns a classified submission into at most one open CTL alert per
correlation key and links a follow-up ticket exactly once.

Following SOLID principles:
- Single Responsibility: correlation and ticket linking are separate services
- Dependency Inversion: depends on store/gateway abstractions
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from feedback_core.alerting.domain import (
    AlertCalculator, AlertThresholds, CorrelationResult, CTLAlert
)
from feedback_core.classification.domain import Classification, extract_text_answers
from feedback_core.core import ConfigurationError, ValidationException
from feedback_core.shared.domain import Submission
from feedback_core.shared.infrastructure.logging import get_logger
from feedback_core.shared.infrastructure.retry import RetryPolicy, retry_on_contention

logger = get_logger(__name__)


# ========== Store / Gateway Interfaces ==========

class IAlertStore(ABC):
    """
    Interface for CTL alert storage.

    ``find_or_create_open`` must be an atomic insert-if-absent on the
    correlation key: racing callers get the same single open alert.
    """

    @abstractmethod
    async def find_or_create_open(self, candidate: CTLAlert) -> Tuple[CTLAlert, bool]:
        """Return the open alert for the candidate's key, creating it from the candidate if none; flag tells whether it was created."""

    @abstractmethod
    async def get(self, alert_id: str) -> Optional[CTLAlert]:
        """Get alert by ID."""

    @abstractmethod
    async def get_open_by_key(self, correlation_key: str) -> Optional[CTLAlert]:
        """Get the open alert for a correlation key."""

    @abstractmethod
    async def record_severity(
        self,
        alert_id: str,
        score_value: float,
        sentiment: str,
        notes: Optional[str]
    ) -> bool:
        """Update score/sentiment/notes only if ``score_value`` is more negative and the alert is open."""

    @abstractmethod
    async def link_ticket(self, alert_id: str, ticket_id: str) -> bool:
        """Set the ticket id only when none is linked; True if this call linked it."""

    @abstractmethod
    async def resolve(self, alert_id: str, resolved_by: str, at: datetime) -> CTLAlert:
        """Close an open alert."""

    @abstractmethod
    async def list_unlinked_open(self, limit: int = 100) -> List[CTLAlert]:
        """Open alerts without a ticket, oldest first."""


class ITicketGateway(ABC):
    """Interface for the external ticketing system."""

    @abstractmethod
    async def create_ticket(self, alert: CTLAlert) -> str:
        """
        Open a follow-up ticket for an alert and return its id.

        Must be idempotent per alert id.
        """


class IThresholdProvider(ABC):
    """Interface for alert threshold configuration access."""

    @abstractmethod
    async def get_thresholds(self, tenant_id: str, form_id: str) -> AlertThresholds:
        """Get the thresholds that apply to a form."""


class StaticThresholdProvider(IThresholdProvider):
    """Same thresholds for every form."""

    def __init__(self, thresholds: Optional[AlertThresholds] = None):
        self._thresholds = thresholds or AlertThresholds()

    async def get_thresholds(self, tenant_id: str, form_id: str) -> AlertThresholds:
        return self._thresholds


# ========== Application Services ==========

class TicketLinkService:
    """
    Links follow-up tickets to open alerts.

    Ticket creation never affects alert existence: failures are logged and
    the alert stays open and unlinked until ``retry_unlinked`` succeeds.
    """

    def __init__(
        self,
        alert_store: IAlertStore,
        ticket_gateway: ITicketGateway,
        retry_policy: Optional[RetryPolicy] = None
    ):
        self._alert_store = alert_store
        self._ticket_gateway = ticket_gateway
        self._retry_policy = retry_policy or RetryPolicy.from_settings()

    async def link(self, alert: CTLAlert) -> Optional[str]:
        """
        Request a ticket for ``alert`` and store its id.

        Returns:
            The linked ticket id, or None if the ticket could not be created
        """
        try:
            ticket_id = await self._ticket_gateway.create_ticket(alert)
        except Exception as e:
            logger.error(
                "Ticket creation failed, alert left unlinked",
                extra={"alert_id": alert.id, "error": str(e)}
            )
            return None

        try:
            linked = await retry_on_contention(
                self._retry_policy,
                "alert_link_ticket",
                lambda: self._alert_store.link_ticket(alert.id, ticket_id)
            )
        except Exception as e:
            logger.error(
                "Storing ticket link failed",
                extra={"alert_id": alert.id, "ticket_id": ticket_id, "error": str(e)}
            )
            return None

        if not linked:
            # Another worker linked first; report the stored link
            current = await self._alert_store.get(alert.id)
            return current.ticket_id if current else None

        logger.info(
            "Ticket linked to alert",
            extra={"alert_id": alert.id, "ticket_id": ticket_id}
        )
        return ticket_id

    async def retry_unlinked(self, limit: int = 100) -> int:
        """
        Retry ticket creation for open alerts that have none.

        Returns:
            Number of alerts linked by this pass
        """
        alerts = await self._alert_store.list_unlinked_open(limit=limit)
        linked = 0
        for alert in alerts:
            if await self.link(alert):
                linked += 1

        if alerts:
            logger.info(
                "Unlinked alert retry completed",
                extra={"candidates": len(alerts), "linked": linked}
            )
        return linked


class CorrelationService:
    """
    Decides alert/no-alert and deduplicates on the correlation key.

    A duplicate submission for an open key never creates a second alert;
    it may only raise the recorded severity.
    """

    def __init__(
        self,
        alert_store: IAlertStore,
        ticket_gateway: Optional[ITicketGateway] = None,
        retry_policy: Optional[RetryPolicy] = None
    ):
        self._alert_store = alert_store
        self._retry_policy = retry_policy or RetryPolicy.from_settings()
        self._tickets = (
            TicketLinkService(alert_store, ticket_gateway, self._retry_policy)
            if ticket_gateway is not None else None
        )

    async def correlate(
        self,
        submission: Submission,
        classification: Classification,
        thresholds: AlertThresholds,
        correlation_key: Optional[str] = None
    ) -> CorrelationResult:
        """
        Open or reuse a CTL alert for a classified submission.

        Args:
            submission: The admitted submission
            classification: Its sentiment and persona
            thresholds: Alert thresholds for the form
            correlation_key: Caller-defined dedup dimension (e.g. a CRM contact id)

        Returns:
            CorrelationResult

        Raises:
            ContentionRetryable: Store contention outlasted the retry policy
        """
        sentiment = classification.sentiment
        text = "\n".join(a.text for a in extract_text_answers(submission.data))

        reasons = AlertCalculator.crossing_reasons(sentiment, thresholds, text)
        if not reasons:
            return CorrelationResult.no_alert()

        key = AlertCalculator.correlation_key(
            submission, thresholds.correlation_fields, correlation_key
        )
        notes = AlertCalculator.notes(sentiment, reasons)
        candidate = CTLAlert(
            tenant_id=submission.tenant_id,
            form_id=submission.form_id,
            submission_id=submission.id,
            correlation_key=key,
            alert_level=AlertCalculator.alert_level(sentiment.score, thresholds),
            score_value=sentiment.score,
            sentiment=sentiment.sentiment,
            notes=notes,
        )

        alert, created = await retry_on_contention(
            self._retry_policy,
            "alert_find_or_create",
            lambda: self._alert_store.find_or_create_open(candidate)
        )

        if not created:
            updated = await retry_on_contention(
                self._retry_policy,
                "alert_record_severity",
                lambda: self._alert_store.record_severity(
                    alert.id, sentiment.score, sentiment.sentiment, notes
                )
            )
            logger.info(
                "Submission attached to open alert",
                extra={
                    "alert_id": alert.id,
                    "submission_id": submission.id,
                    "correlation_key": key,
                    "severity_updated": updated
                }
            )
            return CorrelationResult(
                alert_created=False,
                alert_id=alert.id,
                reused_existing=True,
                alert_level=alert.alert_level,
                ticket_id=alert.ticket_id,
                correlation_key=key,
            )

        logger.info(
            "CTL alert opened",
            extra={
                "alert_id": alert.id,
                "submission_id": submission.id,
                "correlation_key": key,
                "alert_level": alert.alert_level,
                "reasons": reasons
            }
        )

        ticket_id = await self._tickets.link(alert) if self._tickets else None

        return CorrelationResult(
            alert_created=True,
            alert_id=alert.id,
            reused_existing=False,
            alert_level=alert.alert_level,
            ticket_id=ticket_id,
            correlation_key=key,
        )

    async def resolve(
        self,
        alert_id: str,
        resolved_by: str,
        at: Optional[datetime] = None
    ) -> CTLAlert:
        """Resolve an alert on behalf of a human; its key becomes free again."""
        if not resolved_by:
            raise ValidationException("resolved_by is required", {"alert_id": alert_id})
        alert = await self._alert_store.resolve(alert_id, resolved_by, at or datetime.now(timezone.utc))
        logger.info(
            "CTL alert resolved",
            extra={"alert_id": alert_id, "resolved_by": resolved_by}
        )
        return alert


async def load_thresholds(
    provider: IThresholdProvider,
    tenant_id: str,
    form_id: str
) -> AlertThresholds:
    """Fetch thresholds, wrapping provider failures as ``ConfigurationError``."""
    try:
        return await provider.get_thresholds(tenant_id, form_id)
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load alert thresholds for form {form_id}: {e}",
            {"tenant_id": tenant_id, "form_id": form_id}
        ) from e
