"""
Submission Pipeline
===================

Composes the three stages for one submission:

    Admission -> [accepted] Classification -> Correlation

Cancellation semantics:
- during admission: ``admit`` rolls back its own increments
- during classification: the admission is released, then the
  cancellation propagates
- correlation runs shielded once started, so a cancelled caller never
  leaves a half-created alert

With a configuration manager, each run reads one configuration snapshot
taken before admission.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedback_core.admission.application import AdmissionService, IQuotaProvider
from feedback_core.admission.domain import AdmissionDecision
from feedback_core.admission.infrastructure import (
    InMemoryCounterStore,
    InMemoryQuotaProvider,
    SQLAlchemyCounterStore,
    YAMLQuotaProvider,
)
from feedback_core.alerting.application import (
    CorrelationService,
    IThresholdProvider,
    ITicketGateway,
    StaticThresholdProvider,
    load_thresholds,
)
from feedback_core.alerting.domain import CorrelationResult
from feedback_core.alerting.infrastructure import (
    InMemoryAlertStore,
    SQLAlchemyAlertStore,
    YAMLThresholdProvider,
)
from feedback_core.classification.application import (
    ClassificationService,
    IPersonaRuleProvider,
    ISentimentProvider,
    StaticPersonaRuleProvider,
)
from feedback_core.classification.domain import Classification
from feedback_core.classification.infrastructure import YAMLPersonaRuleProvider
from feedback_core.shared.domain import Submission
from feedback_core.shared.infrastructure.config_manager import YAMLConfigManager
from feedback_core.shared.infrastructure.logging import get_context_logger, log_latency
from feedback_core.shared.infrastructure.retry import RetryPolicy


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""
    submission_id: str
    admission: AdmissionDecision
    classification: Optional[Classification] = None
    correlation: Optional[CorrelationResult] = None

    @property
    def accepted(self) -> bool:
        return self.admission.accepted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "admission": self.admission.to_dict(),
            "classification": self.classification.to_dict() if self.classification else None,
            "correlation": self.correlation.to_dict() if self.correlation else None,
        }


class SubmissionPipeline:
    """Runs admission, classification and correlation for a submission."""

    def __init__(
        self,
        admission: AdmissionService,
        classification: ClassificationService,
        correlation: CorrelationService,
        threshold_provider: Optional[IThresholdProvider] = None,
        config_manager: Optional[YAMLConfigManager] = None
    ):
        self.admission = admission
        self.classification = classification
        self.correlation = correlation
        self._threshold_provider = threshold_provider or StaticThresholdProvider()
        self._config_manager = config_manager

    async def process(
        self,
        submission: Submission,
        correlation_key: Optional[str] = None
    ) -> PipelineResult:
        """
        Process one submission end to end.

        Args:
            submission: The incoming submission
            correlation_key: Optional dedup dimension chosen by the host

        Returns:
            PipelineResult; a rejected submission carries only the admission

        Raises:
            ValidationException: Missing tenant or form id
            ConfigurationError: Quotas, rules or thresholds could not be loaded
            ContentionRetryable: Store contention outlasted the retry policy
        """
        if self._config_manager is None:
            return await self._run(submission, correlation_key)

        config = await self._config_manager.current()
        with self._config_manager.pinned(config):
            return await self._run(submission, correlation_key)

    async def _run(
        self,
        submission: Submission,
        correlation_key: Optional[str]
    ) -> PipelineResult:
        logger = get_context_logger(__name__, submission.id)

        with log_latency(logger, "admission", form_id=submission.form_id):
            decision = await self.admission.admit(
                submission.tenant_id, submission.form_id, submission.created_at
            )
        result = PipelineResult(submission_id=submission.id, admission=decision)
        if not decision.accepted:
            return result

        try:
            classification = await self.classification.classify(submission)
            thresholds = await load_thresholds(
                self._threshold_provider, submission.tenant_id, submission.form_id
            )
        except BaseException:
            await self.admission.release(decision)
            logger.warning(
                "Processing aborted after admission, counters released",
                extra={"submission_id": submission.id}
            )
            raise
        result.classification = classification

        result.correlation = await asyncio.shield(
            self.correlation.correlate(
                submission, classification, thresholds, correlation_key
            )
        )
        return result

    async def process_many(self, submissions: List[Submission]) -> List[PipelineResult]:
        """Process submissions concurrently, one task each; results keep input order."""
        return list(await asyncio.gather(*(self.process(s) for s in submissions)))


def build_pipeline(
    config_manager: Optional[YAMLConfigManager] = None,
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
    ticket_gateway: Optional[ITicketGateway] = None,
    sentiment_provider: Optional[ISentimentProvider] = None,
    retry_policy: Optional[RetryPolicy] = None
) -> SubmissionPipeline:
    """
    Wire a pipeline from the shipped adapters.

    With a ``config_manager`` quotas, rules and thresholds come from YAML;
    otherwise there are no quotas, the GCC rule preset and default
    thresholds. With a ``session_maker`` counters and alerts live in SQL;
    otherwise in memory.
    """
    quota_provider: IQuotaProvider
    rule_provider: IPersonaRuleProvider
    threshold_provider: IThresholdProvider
    if config_manager is not None:
        quota_provider = YAMLQuotaProvider(config_manager)
        rule_provider = YAMLPersonaRuleProvider(config_manager)
        threshold_provider = YAMLThresholdProvider(config_manager)
    else:
        quota_provider = InMemoryQuotaProvider()
        rule_provider = StaticPersonaRuleProvider()
        threshold_provider = StaticThresholdProvider()

    if session_maker is not None:
        counter_store = SQLAlchemyCounterStore(session_maker)
        alert_store = SQLAlchemyAlertStore(session_maker)
    else:
        counter_store = InMemoryCounterStore()
        alert_store = InMemoryAlertStore()

    return SubmissionPipeline(
        admission=AdmissionService(quota_provider, counter_store, retry_policy),
        classification=ClassificationService(rule_provider, sentiment_provider),
        correlation=CorrelationService(alert_store, ticket_gateway, retry_policy),
        threshold_provider=threshold_provider,
        config_manager=config_manager,
    )
