"""
Alerting External Service Integrations
======================================

External services for close-the-loop follow-up:
- HTTP ticketing gateway (httpx) with circuit breaker and retry
- APScheduler job retrying ticket links for unlinked open alerts
"""

import asyncio
import time
from datetime import timedelta
from typing import Any, Dict, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from feedback_core.alerting.application.services import ITicketGateway, TicketLinkService
from feedback_core.alerting.domain import CTLAlert
from feedback_core.config import settings
from feedback_core.core import TicketServiceException
from feedback_core.shared.infrastructure.logging import get_logger
from feedback_core.shared.infrastructure.retry import RetryPolicy

logger = get_logger(__name__)

# First response / resolution targets for CTL tickets
FIRST_RESPONSE_DUE = timedelta(hours=24)
RESOLUTION_DUE = timedelta(hours=48)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        """Check if request should be allowed."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        """Record successful request."""
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Record failed request."""
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class HttpTicketGateway(ITicketGateway):
    """
    Ticketing webhook client with circuit breaker and retry logic.

    The alert id travels as ``Idempotency-Key`` so a retried request can
    never open a second ticket for the same alert.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        max_retries: int = 3,
        retry_policy: Optional[RetryPolicy] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url or settings.ticket_webhook_url
        self._max_retries = max_retries
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=max_retries, initial_delay=1.0, max_delay=8.0
        )
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=settings.ticket_timeout_seconds
            )
        return self._http_client

    @staticmethod
    def build_payload(alert: CTLAlert) -> Dict[str, Any]:
        """Ticket body for a CTL alert."""
        description = (
            "Close the Loop follow-up.\n\n"
            f"Alert Level: {alert.alert_level}\n"
            f"Score: {alert.score_value} ({alert.score_type})\n"
            f"Sentiment: {alert.sentiment}"
        )
        if alert.notes:
            description += f"\nNotes: {alert.notes}"

        return {
            "subject": f"CTL follow-up: {alert.alert_level} alert for submission {alert.submission_id}",
            "description": description,
            "priority": alert.alert_level,
            "channel": "ctl",
            "tenant_id": alert.tenant_id,
            "form_id": alert.form_id,
            "submission_id": alert.submission_id,
            "alert_id": alert.id,
            "first_response_due_at": (alert.created_at + FIRST_RESPONSE_DUE).isoformat(),
            "resolution_due_at": (alert.created_at + RESOLUTION_DUE).isoformat(),
        }

    @staticmethod
    def _ticket_id_from(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError as e:
            raise TicketServiceException("Ticket response is not JSON", {"error": str(e)}) from e
        if isinstance(body, dict):
            for key in ("ticket_id", "id"):
                if body.get(key) is not None:
                    return str(body[key])
            ticket = body.get("ticket")
            if isinstance(ticket, dict) and ticket.get("id") is not None:
                return str(ticket["id"])
        raise TicketServiceException("Ticket response carries no id", {"body": str(body)[:200]})

    async def create_ticket(self, alert: CTLAlert) -> str:
        """
        Open a ticket for an alert.

        Raises:
            TicketServiceException: Not configured, circuit open, rejected, or retries exhausted
        """
        if not self._webhook_url:
            raise TicketServiceException("Ticket webhook URL not configured")

        if not self._circuit_breaker.allow_request():
            raise TicketServiceException(
                "Circuit breaker open, skipping ticket creation",
                {"alert_id": alert.id}
            )

        payload = self.build_payload(alert)
        headers = {"Idempotency-Key": alert.id}
        last_error: Optional[str] = None

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=payload, headers=headers)

                if response.status_code in (200, 201):
                    ticket_id = self._ticket_id_from(response)
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Ticket created",
                        extra={"alert_id": alert.id, "ticket_id": ticket_id}
                    )
                    return ticket_id

                if 400 <= response.status_code < 500 and response.status_code != 429:
                    self._circuit_breaker.record_failure()
                    raise TicketServiceException(
                        f"Ticket rejected with status {response.status_code}",
                        {"alert_id": alert.id, "status_code": response.status_code}
                    )

                last_error = f"status {response.status_code}"
                logger.warning(
                    "Ticket endpoint returned retryable status",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )

            except httpx.HTTPError as e:
                last_error = str(e)
                logger.error(
                    "Ticket request failed",
                    extra={"error": str(e), "attempt": attempt + 1, "alert_id": alert.id}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_policy.compute_delay(attempt))

        self._circuit_breaker.record_failure()
        raise TicketServiceException(
            f"Ticket creation failed after {self._max_retries} attempts: {last_error}",
            {"alert_id": alert.id}
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class TicketLinkScheduler:
    """
    Wrapper for APScheduler running the unlinked-alert retry job.

    Manages the lifecycle of the scheduler and its single job.
    """

    JOB_ID = "ctl_ticket_link_retry"

    def __init__(self, link_service: TicketLinkService, interval_seconds: Optional[int] = None):
        self._link_service = link_service
        self.interval_seconds = interval_seconds or settings.ticket_retry_interval
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def run_once(self) -> int:
        """One retry pass; failures are logged so the job keeps its schedule."""
        try:
            return await self._link_service.retry_unlinked()
        except Exception as e:
            logger.error("Ticket link retry pass failed", extra={"error": str(e)})
            return 0

    async def start(self) -> None:
        """Start the scheduler (requires a running event loop)."""
        if self._running:
            logger.warning("Ticket link scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_once,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name="CTL Ticket Link Retry",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info(
            "Ticket link scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Ticket link scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
