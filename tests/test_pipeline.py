"""Tests for feedback_core/pipeline.py

Covers:
- SubmissionPipeline.process: end-to-end admission, classification, correlation
- Rejected submissions skip classification and correlation
- Cancellation or configuration failure after admission releases counters
- build_pipeline wiring over YAML configuration and SQL stores
- One configuration snapshot per run
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import (
    EVENT_TIME,
    FORM,
    TENANT,
    RecordingTicketGateway,
    make_classification,
    make_submission,
)
from feedback_core import Submission, build_pipeline
from feedback_core.admission.application import AdmissionService
from feedback_core.admission.domain import Quota
from feedback_core.admission.infrastructure import InMemoryCounterStore, InMemoryQuotaProvider
from feedback_core.alerting.application import CorrelationService
from feedback_core.alerting.infrastructure import InMemoryAlertStore
from feedback_core.classification.application import (
    ClassificationService,
    IPersonaRuleProvider,
    ISentimentProvider,
)
from feedback_core.core import ConfigurationError, ValidationException
from feedback_core.pipeline import SubmissionPipeline
from feedback_core.shared.infrastructure.config_manager import YAMLConfigManager

NEGATIVE = {"comment": "Terrible service, the agent was rude and unhelpful"}

CONFIG = {
    "quotas": [
        {"id": "q-daily", "tenant_id": TENANT, "form_id": FORM, "limit_value": 2, "period_type": "day"}
    ],
    "alert_thresholds": {"default": {"negative_score_threshold": -0.5}},
}


class BlockingSentimentProvider(ISentimentProvider):
    """Sentiment provider that never answers."""

    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def analyze(self, answers):
        self.started.set()
        await asyncio.sleep(3600)


class ConfigSwappingSentimentProvider(ISentimentProvider):
    """Replaces the configuration mid-run, then reports a strongly negative score."""

    def __init__(self, manager: YAMLConfigManager) -> None:
        self.manager = manager

    async def analyze(self, answers):
        self.manager.load_from_dict(
            {"alert_thresholds": {"default": {"negative_score_threshold": -0.99}}}
        )
        return make_classification(-0.8).sentiment


class BrokenRuleProvider(IPersonaRuleProvider):
    async def get_rules(self, tenant_id):
        raise ConfigurationError("rules missing")


def _pipeline(store: InMemoryCounterStore, classification: ClassificationService, fast_retry) -> SubmissionPipeline:
    quota = Quota(id="q", tenant_id=TENANT, form_id=FORM, limit_value=5, period_type="day")
    return SubmissionPipeline(
        admission=AdmissionService(InMemoryQuotaProvider([quota]), store, fast_retry),
        classification=classification,
        correlation=CorrelationService(InMemoryAlertStore(), retry_policy=fast_retry),
    )


class TestProcess:
    """Verify the end-to-end path."""

    @pytest.mark.asyncio
    async def test_negative_submission_flows_to_alert(self, ticket_gateway, fast_retry) -> None:
        manager = YAMLConfigManager()
        manager.load_from_dict(CONFIG)
        pipeline = build_pipeline(manager, ticket_gateway=ticket_gateway, retry_policy=fast_retry)

        first = await pipeline.process(make_submission("SUB-1", data=NEGATIVE, customer_id="C-1"))
        second = await pipeline.process(make_submission("SUB-2", data=NEGATIVE, customer_id="C-1"))
        third = await pipeline.process(make_submission("SUB-3", data=NEGATIVE, customer_id="C-1"))

        assert first.accepted is True
        assert first.classification.sentiment.sentiment == "negative"
        assert first.correlation.alert_created is True
        assert first.correlation.ticket_id == "TICKET-1"

        assert second.correlation.reused_existing is True
        assert second.correlation.alert_id == first.correlation.alert_id

        assert third.accepted is False
        assert third.admission.exhausted_quota_id == "q-daily"
        assert third.classification is None
        assert third.correlation is None
        assert len(ticket_gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_positive_submission_no_alert(self) -> None:
        pipeline = build_pipeline()
        submission = make_submission(data={"comment": "Excellent and friendly staff, thanks"})

        result = await pipeline.process(submission)

        assert result.correlation.alert_created is False
        assert submission.analysis["sentiment"]["sentiment"] == "positive"
        assert result.to_dict()["admission"]["accepted"] is True

    @pytest.mark.asyncio
    async def test_caller_correlation_key(self, fast_retry) -> None:
        pipeline = build_pipeline(retry_policy=fast_retry)

        a = await pipeline.process(make_submission("S-1", data=NEGATIVE), correlation_key="crm:42")
        b = await pipeline.process(make_submission("S-2", data=NEGATIVE), correlation_key="crm:42")

        assert a.correlation.correlation_key == f"{TENANT}:{FORM}:crm:42"
        assert b.correlation.alert_id == a.correlation.alert_id

    @pytest.mark.asyncio
    async def test_process_many_keeps_order(self, fast_retry) -> None:
        pipeline = build_pipeline(retry_policy=fast_retry)
        submissions = [make_submission(f"S-{i}", data=NEGATIVE) for i in range(5)]

        results = await pipeline.process_many(submissions)

        assert [r.submission_id for r in results] == [s.id for s in submissions]
        assert all(r.correlation.alert_created for r in results)

    @pytest.mark.asyncio
    async def test_sql_backed_pipeline(self, session_maker, fast_retry) -> None:
        manager = YAMLConfigManager()
        manager.load_from_dict(CONFIG)
        gateway = RecordingTicketGateway(fail=True)
        pipeline = build_pipeline(manager, session_maker, gateway, retry_policy=fast_retry)

        result = await pipeline.process(make_submission(data=NEGATIVE, customer_id="C-9"))
        usage = await pipeline.admission.usage(TENANT, FORM, EVENT_TIME)

        assert result.correlation.alert_created is True
        assert result.correlation.ticket_id is None
        assert usage[0].used == 1

    @pytest.mark.asyncio
    async def test_run_reads_one_config_snapshot(self, fast_retry) -> None:
        manager = YAMLConfigManager()
        manager.load_from_dict(CONFIG)
        pipeline = build_pipeline(
            manager,
            sentiment_provider=ConfigSwappingSentimentProvider(manager),
            retry_policy=fast_retry,
        )

        result = await pipeline.process(make_submission(data=NEGATIVE))

        assert result.correlation.alert_created is True
        assert manager.config.thresholds_for(TENANT, FORM).negative_score_threshold == -0.99


class TestCancellation:
    """Verify admissions are released when processing stops after admission."""

    @pytest.mark.asyncio
    async def test_cancel_during_classification_releases_counters(self, counter_store, fast_retry) -> None:
        provider = BlockingSentimentProvider()
        pipeline = _pipeline(counter_store, ClassificationService(sentiment_provider=provider), fast_retry)

        task = asyncio.create_task(pipeline.process(make_submission(data=NEGATIVE)))
        await provider.started.wait()
        assert await counter_store.get_count("q", "day:2026-10-18") == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await counter_store.get_count("q", "day:2026-10-18") == 0

    @pytest.mark.asyncio
    async def test_configuration_error_releases_counters(self, counter_store, fast_retry) -> None:
        pipeline = _pipeline(counter_store, ClassificationService(rule_provider=BrokenRuleProvider()), fast_retry)

        with pytest.raises(ConfigurationError):
            await pipeline.process(make_submission(data=NEGATIVE))

        assert await counter_store.get_count("q", "day:2026-10-18") == 0

    @pytest.mark.asyncio
    async def test_invalid_submission_rejected_before_counting(self, counter_store, fast_retry) -> None:
        pipeline = _pipeline(counter_store, ClassificationService(), fast_retry)

        with pytest.raises(ValidationException):
            await pipeline.process(Submission(id="S", tenant_id="", form_id=FORM))
