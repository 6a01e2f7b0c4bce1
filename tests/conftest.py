"""Shared fixtures for feedback-core tests.

Provides zero-delay retry policies, in-memory stores, a SQLite-backed
session maker for the SQL stores, recording ticket gateways and
submission/classification factories used across the test modules.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from feedback_core.admission.infrastructure import InMemoryCounterStore
from feedback_core.alerting.application import ITicketGateway
from feedback_core.alerting.domain import CTLAlert
from feedback_core.alerting.infrastructure import InMemoryAlertStore
from feedback_core.classification.domain import (
    Classification,
    PersonaAssignment,
    SentimentResult,
)
from feedback_core.core import TicketServiceException
from feedback_core.infrastructure.database import create_tables
from feedback_core.shared.domain import Submission
from feedback_core.shared.infrastructure.retry import RetryPolicy

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TENANT = "tenant-1"
FORM = "form-nps"
EVENT_TIME = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Ticket gateways
# ---------------------------------------------------------------------------


class RecordingTicketGateway(ITicketGateway):
    """Gateway that records calls and can be switched to fail."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[str] = []

    async def create_ticket(self, alert: CTLAlert) -> str:
        self.calls.append(alert.id)
        if self.fail:
            raise TicketServiceException("ticketing unavailable", {"alert_id": alert.id})
        return f"TICKET-{len(self.calls)}"


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_submission(
    submission_id: str = "SUB-1",
    data: dict[str, Any] | None = None,
    customer_id: str | None = None,
    respondent: dict[str, Any] | None = None,
    created_at: datetime = EVENT_TIME,
) -> Submission:
    """Build a submission for the default tenant and form."""
    return Submission(
        id=submission_id,
        tenant_id=TENANT,
        form_id=FORM,
        data=data if data is not None else {"comment": "The delivery was okay overall"},
        created_at=created_at,
        customer_id=customer_id,
        respondent=respondent or {},
    )


def make_classification(
    score: float,
    primary_emotion: str = "neutral",
    confidence: float = 0.9,
    keywords: list[str] | None = None,
) -> Classification:
    """Build a classification with a fixed sentiment and the fallback persona."""
    label = "negative" if score <= -0.3 else "positive" if score >= 0.3 else "neutral"
    sentiment = SentimentResult(
        sentiment=label,
        score=score,
        confidence=confidence,
        emotions={primary_emotion: 1.0},
        primary_emotion=primary_emotion,
        keywords=keywords or [],
    )
    return Classification(
        sentiment=sentiment,
        persona=PersonaAssignment(persona_id="GENERAL", name="General"),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fast_retry() -> RetryPolicy:
    """Retry policy without backoff delays."""
    return RetryPolicy(max_attempts=3, initial_delay=0.0, max_delay=0.0, jitter=False)


@pytest.fixture()
def counter_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture()
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture()
def ticket_gateway() -> RecordingTicketGateway:
    return RecordingTicketGateway()


@pytest_asyncio.fixture()
async def session_maker(tmp_path) -> async_sessionmaker[AsyncSession]:
    """Session maker over a fresh SQLite database with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'feedback.db'}")
    await create_tables(engine)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
