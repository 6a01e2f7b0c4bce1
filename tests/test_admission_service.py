"""Tests for feedback_core/admission

Covers:
- PeriodKeyCalculator: bucket keys per period type, UTC normalisation
- AdmissionService.admit: limits, evaluation order, rollback on refusal
- AdmissionService.admit: contention retry, configuration and input errors
- AdmissionService.admit: cancellation rolls back partial increments
- AdmissionService.release and usage
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import EVENT_TIME, FORM, TENANT
from feedback_core.admission.application import AdmissionService, IQuotaProvider
from feedback_core.admission.domain import IncrementOutcome, PeriodKeyCalculator, Quota
from feedback_core.admission.infrastructure import InMemoryCounterStore, InMemoryQuotaProvider
from feedback_core.core import ConfigurationError, ContentionRetryable, ValidationException

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _quota(quota_id: str, limit: int, period: str = "day", active: bool = True) -> Quota:
    return Quota(
        id=quota_id,
        tenant_id=TENANT,
        form_id=FORM,
        limit_value=limit,
        period_type=period,
        is_active=active,
    )


def _service(store, *quotas: Quota, retry=None) -> AdmissionService:
    return AdmissionService(InMemoryQuotaProvider(quotas), store, retry)


class FlakyCounterStore(InMemoryCounterStore):
    """Raises contention for the first ``failures`` increments of ``quota_id``."""

    def __init__(self, quota_id: str, failures: int) -> None:
        super().__init__()
        self.quota_id = quota_id
        self.failures = failures
        self.attempts = 0

    async def increment_if_below(self, quota_id, period_key, limit) -> IncrementOutcome:
        if quota_id == self.quota_id:
            self.attempts += 1
            if self.attempts <= self.failures:
                raise ContentionRetryable("counter_increment")
        return await super().increment_if_below(quota_id, period_key, limit)


class BlockingCounterStore(InMemoryCounterStore):
    """Holds increments of ``quota_id`` after signalling ``reached`` until ``proceed`` is set."""

    def __init__(self, quota_id: str) -> None:
        super().__init__()
        self.quota_id = quota_id
        self.reached = asyncio.Event()
        self.proceed = asyncio.Event()

    async def increment_if_below(self, quota_id, period_key, limit) -> IncrementOutcome:
        if quota_id == self.quota_id:
            self.reached.set()
            await self.proceed.wait()
        return await super().increment_if_below(quota_id, period_key, limit)


class BrokenQuotaProvider(IQuotaProvider):
    async def get_quotas(self, tenant_id, form_id):
        raise RuntimeError("config service down")


# ---------------------------------------------------------------------------
# Period keys
# ---------------------------------------------------------------------------


class TestPeriodKey:
    """Verify counter bucket derivation."""

    @pytest.mark.parametrize(
        "period_type, expected",
        [
            ("day", "day:2026-10-18"),
            ("week", "week:2026-W42"),
            ("month", "month:2026-10"),
            ("total", "total"),
        ],
    )
    def test_period_keys(self, period_type: str, expected: str) -> None:
        assert PeriodKeyCalculator.period_key(period_type, EVENT_TIME) == expected

    def test_offset_instant_normalised_to_utc(self) -> None:
        """02:00 on the 19th at +04:00 is still the 18th in UTC."""
        gulf = timezone(timedelta(hours=4))
        instant = datetime(2026, 10, 19, 2, 0, tzinfo=gulf)
        assert PeriodKeyCalculator.period_key("day", instant) == "day:2026-10-18"

    def test_naive_instant_treated_as_utc(self) -> None:
        naive = datetime(2026, 10, 18, 23, 59)
        assert PeriodKeyCalculator.period_key("day", naive) == "day:2026-10-18"

    def test_unknown_period_raises(self) -> None:
        with pytest.raises(ValueError):
            PeriodKeyCalculator.period_key("fortnight", EVENT_TIME)

    def test_quota_rejects_unknown_period_type(self) -> None:
        with pytest.raises(ValueError):
            _quota("q", 1, period="fortnight")


# ---------------------------------------------------------------------------
# Admission
# ---------------------------------------------------------------------------


class TestAdmit:
    """Verify accept/reject decisions and counter bookkeeping."""

    @pytest.mark.asyncio
    async def test_no_quotas_accepts_unconditionally(self, counter_store) -> None:
        decision = await _service(counter_store).admit(TENANT, FORM, EVENT_TIME)

        assert decision.accepted is True
        assert decision.counted == []

    @pytest.mark.asyncio
    async def test_daily_quota_of_two_admits_two_of_three(self, counter_store, fast_retry) -> None:
        """Quota{2, day} with three same-day submissions gives [True, True, False]."""
        service = _service(counter_store, _quota("q-daily", 2), retry=fast_retry)

        results = [
            (await service.admit(TENANT, FORM, EVENT_TIME + timedelta(minutes=i))).accepted
            for i in range(3)
        ]

        assert results == [True, True, False]
        assert await counter_store.get_count("q-daily", "day:2026-10-18") == 2

    @pytest.mark.asyncio
    async def test_new_period_starts_from_zero(self, counter_store, fast_retry) -> None:
        service = _service(counter_store, _quota("q-daily", 1), retry=fast_retry)

        assert (await service.admit(TENANT, FORM, EVENT_TIME)).accepted is True
        assert (await service.admit(TENANT, FORM, EVENT_TIME)).accepted is False
        assert (await service.admit(TENANT, FORM, EVENT_TIME + timedelta(days=1))).accepted is True

    @pytest.mark.asyncio
    async def test_concurrent_admits_never_exceed_limit(self, counter_store, fast_retry) -> None:
        service = _service(counter_store, _quota("q-total", 10, period="total"), retry=fast_retry)

        decisions = await asyncio.gather(
            *(service.admit(TENANT, FORM, EVENT_TIME) for _ in range(50))
        )

        assert sum(d.accepted for d in decisions) == 10
        assert await counter_store.get_count("q-total", "total") == 10

    @pytest.mark.asyncio
    async def test_rejection_rolls_back_earlier_quotas(self, counter_store, fast_retry) -> None:
        """A refusal on the second quota leaves the first counter untouched."""
        first = _quota("a-first", 5, period="total")
        second = _quota("b-second", 5, period="day")
        for _ in range(5):
            await counter_store.increment_if_below("b-second", "day:2026-10-18", 5)

        decision = await _service(counter_store, second, first, retry=fast_retry).admit(
            TENANT, FORM, EVENT_TIME
        )

        assert decision.accepted is False
        assert decision.exhausted_quota_id == "b-second"
        assert decision.counted == []
        assert await counter_store.get_count("a-first", "total") == 0
        assert await counter_store.get_count("b-second", "day:2026-10-18") == 5

    @pytest.mark.asyncio
    async def test_tightest_quota_evaluated_first(self, counter_store, fast_retry) -> None:
        loose = _quota("loose", 100, period="total")
        tight = _quota("tight", 0, period="total")

        decision = await _service(counter_store, loose, tight, retry=fast_retry).admit(
            TENANT, FORM, EVENT_TIME
        )

        assert decision.exhausted_quota_id == "tight"
        assert "limit of 0" in decision.reason
        assert await counter_store.get_count("loose", "total") == 0

    @pytest.mark.asyncio
    async def test_inactive_quota_ignored(self, counter_store) -> None:
        decision = await _service(counter_store, _quota("off", 0, active=False)).admit(
            TENANT, FORM, EVENT_TIME
        )

        assert decision.accepted is True
        assert await counter_store.get_count("off", "day:2026-10-18") == 0

    @pytest.mark.asyncio
    async def test_accepted_decision_lists_counted_pairs(self, counter_store, fast_retry) -> None:
        decision = await _service(
            counter_store, _quota("d", 5), _quota("m", 50, period="month"), retry=fast_retry
        ).admit(TENANT, FORM, EVENT_TIME)

        assert [(t.quota_id, t.period_key) for t in decision.counted] == [
            ("d", "day:2026-10-18"),
            ("m", "month:2026-10"),
        ]

    @pytest.mark.asyncio
    async def test_missing_ids_raise_validation(self, counter_store) -> None:
        with pytest.raises(ValidationException):
            await _service(counter_store).admit("", FORM, EVENT_TIME)

    @pytest.mark.asyncio
    async def test_provider_failure_is_configuration_error(self, counter_store) -> None:
        service = AdmissionService(BrokenQuotaProvider(), counter_store)

        with pytest.raises(ConfigurationError):
            await service.admit(TENANT, FORM, EVENT_TIME)


class TestContention:
    """Verify bounded retry of contended counter operations."""

    @pytest.mark.asyncio
    async def test_transient_contention_is_retried(self, fast_retry) -> None:
        store = FlakyCounterStore("q", failures=2)

        decision = await _service(store, _quota("q", 5), retry=fast_retry).admit(
            TENANT, FORM, EVENT_TIME
        )

        assert decision.accepted is True
        assert store.attempts == 3
        assert await store.get_count("q", "day:2026-10-18") == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_surface_and_roll_back(self, fast_retry) -> None:
        """Contention is a transient error, never a silent rejection."""
        store = FlakyCounterStore("b-contended", failures=100)
        service = _service(
            store, _quota("a-ok", 5), _quota("b-contended", 5), retry=fast_retry
        )

        with pytest.raises(ContentionRetryable) as exc_info:
            await service.admit(TENANT, FORM, EVENT_TIME)

        assert exc_info.value.attempts == 3
        assert await store.get_count("a-ok", "day:2026-10-18") == 0


class TestCancellationAndRelease:
    """Verify cancelled or released admissions leave counters unchanged."""

    @pytest.mark.asyncio
    async def test_cancellation_mid_admit_rolls_back(self, fast_retry) -> None:
        store = BlockingCounterStore("b-slow")
        service = _service(store, _quota("a-fast", 5), _quota("b-slow", 5), retry=fast_retry)

        task = asyncio.create_task(service.admit(TENANT, FORM, EVENT_TIME))
        await store.reached.wait()
        assert await store.get_count("a-fast", "day:2026-10-18") == 1

        task.cancel()
        store.proceed.set()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await store.get_count("a-fast", "day:2026-10-18") == 0
        assert await store.get_count("b-slow", "day:2026-10-18") == 0

    @pytest.mark.asyncio
    async def test_cancellation_waits_for_inflight_increment(self, fast_retry) -> None:
        store = BlockingCounterStore("only")
        service = _service(store, _quota("only", 5), retry=fast_retry)

        task = asyncio.create_task(service.admit(TENANT, FORM, EVENT_TIME))
        await store.reached.wait()
        task.cancel()
        for _ in range(5):
            await asyncio.sleep(0)

        assert task.done() is False

        store.proceed.set()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await store.get_count("only", "day:2026-10-18") == 0

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, counter_store, fast_retry) -> None:
        service = _service(counter_store, _quota("q", 5), retry=fast_retry)
        decision = await service.admit(TENANT, FORM, EVENT_TIME)

        await service.release(decision)
        await service.release(decision)

        assert await counter_store.get_count("q", "day:2026-10-18") == 0
        assert decision.counted == []

    @pytest.mark.asyncio
    async def test_release_of_rejection_is_noop(self, counter_store, fast_retry) -> None:
        service = _service(counter_store, _quota("q", 1), retry=fast_retry)
        await service.admit(TENANT, FORM, EVENT_TIME)
        rejected = await service.admit(TENANT, FORM, EVENT_TIME)

        await service.release(rejected)

        assert await counter_store.get_count("q", "day:2026-10-18") == 1


class TestUsage:
    """Verify usage reporting."""

    @pytest.mark.asyncio
    async def test_usage_reports_used_and_remaining(self, counter_store, fast_retry) -> None:
        quota = Quota(
            id="q", tenant_id=TENANT, form_id=FORM,
            limit_value=4, period_type="month", label="Monthly responses",
        )
        service = _service(counter_store, quota, retry=fast_retry)
        await service.admit(TENANT, FORM, EVENT_TIME)

        [usage] = await service.usage(TENANT, FORM, EVENT_TIME)

        assert usage.label == "Monthly responses"
        assert usage.period_key == "month:2026-10"
        assert usage.used == 1
        assert usage.remaining == 3
        assert usage.percentage == 25.0
