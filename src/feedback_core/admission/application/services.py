"""
Admission Application Services
===============================

Application services orchestrate business logic and coordinate between
domain entities and stores.

Following SOLID principles:
- Single Responsibility: admission only gates and counts
- Dependency Inversion: depends on store/provider abstractions, not engines
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from feedback_core.admission.domain import (
    AdmissionDecision, CounterTouch, IncrementOutcome,
    PeriodKeyCalculator, Quota, QuotaUsage
)
from feedback_core.core import ConfigurationError, ValidationException
from feedback_core.shared.infrastructure.logging import get_logger
from feedback_core.shared.infrastructure.retry import RetryPolicy, retry_on_contention

logger = get_logger(__name__)


# ========== Store Interfaces (Dependency Inversion) ==========

class IQuotaProvider(ABC):
    """Interface for quota configuration access."""

    @abstractmethod
    async def get_quotas(self, tenant_id: str, form_id: str) -> List[Quota]:
        """Get configured quotas for a form (active and inactive)."""


class ICounterStore(ABC):
    """
    Interface for period counter storage.

    ``increment_if_below`` must be a single linearizable operation per
    (quota_id, period_key): concurrent callers never both pass the limit.
    Implementations signal a lost race with ``ContentionRetryable``.
    """

    @abstractmethod
    async def increment_if_below(
        self,
        quota_id: str,
        period_key: str,
        limit: int
    ) -> IncrementOutcome:
        """Create the counter at 0 if absent, then increment it unless count >= limit."""

    @abstractmethod
    async def decrement(self, quota_id: str, period_key: str) -> None:
        """Undo one increment (never below zero)."""

    @abstractmethod
    async def get_count(self, quota_id: str, period_key: str) -> int:
        """Current count, 0 when the counter does not exist."""


# ========== Application Services ==========

class AdmissionService:
    """
    Gates submissions against configured quotas.

    Counting is exactly-once: an accepted submission increments every
    active quota's counter once; a rejected or cancelled attempt leaves all
    counters as they were.
    """

    def __init__(
        self,
        quota_provider: IQuotaProvider,
        counter_store: ICounterStore,
        retry_policy: Optional[RetryPolicy] = None
    ):
        self._quota_provider = quota_provider
        self._counter_store = counter_store
        self._retry_policy = retry_policy or RetryPolicy.from_settings()

    async def admit(
        self,
        tenant_id: str,
        form_id: str,
        occurred_at: datetime
    ) -> AdmissionDecision:
        """
        Decide whether a submission may be accepted.

        Args:
            tenant_id: Owning tenant
            form_id: Form the submission belongs to
            occurred_at: Event timestamp used for period keys

        Returns:
            AdmissionDecision; ``accepted`` is False when a quota is exhausted

        Raises:
            ValidationException: Missing tenant or form id
            ConfigurationError: Quota configuration could not be loaded
            ContentionRetryable: Counter contention outlasted the retry policy
        """
        if not tenant_id or not form_id:
            raise ValidationException(
                "tenant_id and form_id are required",
                {"tenant_id": tenant_id, "form_id": form_id}
            )

        quotas = await self._active_quotas(tenant_id, form_id)
        if not quotas:
            return AdmissionDecision.unrestricted()

        counted: List[CounterTouch] = []
        exhausted: Optional[Quota] = None

        try:
            for quota in quotas:
                period_key = PeriodKeyCalculator.period_key(quota.period_type, occurred_at)
                outcome = await self._increment(quota, period_key, counted)
                if not outcome.incremented:
                    exhausted = quota
                    break
                counted.append(CounterTouch(quota_id=quota.id, period_key=period_key))
        except BaseException:
            # Cancellation or surfaced contention after a partial pass
            await self._rollback(counted)
            raise

        if exhausted is not None:
            await self._rollback(counted)
            logger.info(
                "Submission rejected by quota",
                extra={
                    "tenant_id": tenant_id,
                    "form_id": form_id,
                    "quota_id": exhausted.id,
                    "limit": exhausted.limit_value,
                    "period_type": exhausted.period_type
                }
            )
            return AdmissionDecision(
                accepted=False,
                exhausted_quota_id=exhausted.id,
                reason=f"Quota {exhausted.label or exhausted.id} reached its limit of {exhausted.limit_value}"
            )

        logger.debug(
            "Submission admitted",
            extra={"tenant_id": tenant_id, "form_id": form_id, "quotas": len(counted)}
        )
        return AdmissionDecision(accepted=True, counted=counted)

    async def release(self, decision: AdmissionDecision) -> None:
        """
        Undo the counters of an accepted decision.

        Used when a pipeline run is cancelled after admission. Releasing the
        same decision twice is a no-op.
        """
        if not decision.accepted or not decision.counted:
            return
        touched = decision.counted
        decision.counted = []
        await self._rollback(touched)
        logger.info(
            "Admission released",
            extra={"counters": [t.period_key for t in touched]}
        )

    async def usage(
        self,
        tenant_id: str,
        form_id: str,
        at: datetime
    ) -> List[QuotaUsage]:
        """Used vs limit for every active quota in the period containing ``at``."""
        quotas = await self._active_quotas(tenant_id, form_id)
        result = []
        for quota in quotas:
            period_key = PeriodKeyCalculator.period_key(quota.period_type, at)
            used = await self._counter_store.get_count(quota.id, period_key)
            result.append(QuotaUsage(
                quota_id=quota.id,
                label=quota.label,
                period_key=period_key,
                used=used,
                limit=quota.limit_value
            ))
        return result

    async def _active_quotas(self, tenant_id: str, form_id: str) -> List[Quota]:
        """Load active quotas in evaluation order (tightest limit first)."""
        try:
            quotas = await self._quota_provider.get_quotas(tenant_id, form_id)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"Failed to load quotas for form {form_id}: {e}",
                {"tenant_id": tenant_id, "form_id": form_id}
            ) from e

        active = [q for q in quotas if q.is_active]
        return sorted(active, key=lambda q: q.evaluation_order)

    async def _increment(
        self,
        quota: Quota,
        period_key: str,
        counted: List[CounterTouch]
    ) -> IncrementOutcome:
        """
        Increment one counter in its own task.

        A cancelled caller still waits for the store call to settle; an
        increment that committed meanwhile is added to ``counted`` so the
        caller's rollback undoes it.
        """
        task = asyncio.ensure_future(retry_on_contention(
            self._retry_policy,
            "counter_increment",
            lambda: self._counter_store.increment_if_below(
                quota.id, period_key, quota.limit_value
            )
        ))
        try:
            return await _settled(task)
        except asyncio.CancelledError:
            if not task.cancelled() and task.exception() is None and task.result().incremented:
                counted.append(CounterTouch(quota_id=quota.id, period_key=period_key))
            raise

    async def _rollback(self, touched: List[CounterTouch]) -> None:
        """Decrement every touched counter, finishing even if the caller is cancelled."""
        await _settled(asyncio.ensure_future(self._decrement_all(touched)))

    async def _decrement_all(self, touched: List[CounterTouch]) -> None:
        """Decrement every touched counter; report the first failure after trying all."""
        first_error: Optional[BaseException] = None
        for touch in reversed(touched):
            try:
                await retry_on_contention(
                    self._retry_policy,
                    "counter_rollback",
                    lambda t=touch: self._counter_store.decrement(t.quota_id, t.period_key)
                )
            except Exception as e:
                logger.error(
                    "Counter rollback failed",
                    extra={
                        "quota_id": touch.quota_id,
                        "period_key": touch.period_key,
                        "error": str(e)
                    }
                )
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error


async def _settled(task: asyncio.Future):
    """
    Await ``task`` without letting a caller cancellation abandon it.

    The task always runs to completion. A cancellation received while
    waiting is re-raised once the task is done.
    """
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        if task.cancelled():
            raise
        while not task.done():
            try:
                await asyncio.wait({task})
            except asyncio.CancelledError:
                continue
        raise
