"""
Admission Infrastructure Repositories
======================================

Concrete implementations of the admission store interfaces.

- InMemoryCounterStore: reference store for single-process hosts and tests
- SQLAlchemyCounterStore: engine-neutral SQL store (PostgreSQL, SQLite)
- YAMLQuotaProvider / InMemoryQuotaProvider: quota configuration sources
"""

import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple

from sqlalchemy import insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedback_core.admission.application.services import ICounterStore, IQuotaProvider
from feedback_core.admission.domain import IncrementOutcome, Quota
from feedback_core.admission.infrastructure.models import QuotaPeriodCounterModel
from feedback_core.core import ContentionRetryable
from feedback_core.shared.infrastructure.config_manager import YAMLConfigManager


class InMemoryCounterStore(ICounterStore):
    """
    Counter store backed by a dict.

    Every operation is one critical section under a lock, so the
    check-and-increment is linearizable across tasks and threads.
    """

    def __init__(self):
        self._counts: Dict[Tuple[str, str], int] = {}
        self._lock = threading.Lock()

    async def increment_if_below(
        self,
        quota_id: str,
        period_key: str,
        limit: int
    ) -> IncrementOutcome:
        """Atomically increment unless the counter has reached ``limit``."""
        key = (quota_id, period_key)
        with self._lock:
            current = self._counts.setdefault(key, 0)
            if current >= limit:
                return IncrementOutcome(incremented=False, count=current)
            self._counts[key] = current + 1
            return IncrementOutcome(incremented=True, count=current + 1)

    async def decrement(self, quota_id: str, period_key: str) -> None:
        """Undo one increment, never going below zero."""
        key = (quota_id, period_key)
        with self._lock:
            current = self._counts.get(key, 0)
            if current > 0:
                self._counts[key] = current - 1

    async def get_count(self, quota_id: str, period_key: str) -> int:
        """Current count for a counter."""
        with self._lock:
            return self._counts.get((quota_id, period_key), 0)


class SQLAlchemyCounterStore(ICounterStore):
    """
    SQLAlchemy implementation of the counter store.

    Each call runs in its own short transaction:
    1. insert the counter row at 0 if it does not exist
    2. ``UPDATE .. SET count = count + 1 WHERE count < :limit``

    The guarded update is what enforces the limit; the affected row count
    tells whether this caller got a slot. Lock timeouts and serialization
    failures surface as ``ContentionRetryable``.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def increment_if_below(
        self,
        quota_id: str,
        period_key: str,
        limit: int
    ) -> IncrementOutcome:
        """Atomically increment unless the counter has reached ``limit``."""
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    await self._ensure_row(session, quota_id, period_key)

                    stmt = (
                        update(QuotaPeriodCounterModel)
                        .where(
                            QuotaPeriodCounterModel.quota_id == quota_id,
                            QuotaPeriodCounterModel.period_key == period_key,
                            QuotaPeriodCounterModel.count < limit
                        )
                        .values(
                            count=QuotaPeriodCounterModel.count + 1,
                            updated_at=datetime.now(timezone.utc)
                        )
                    )
                    result = await session.execute(stmt)
                    incremented = result.rowcount == 1

                    count = await self._read_count(session, quota_id, period_key)
        except OperationalError as e:
            raise ContentionRetryable(
                "counter_increment",
                details={"quota_id": quota_id, "period_key": period_key, "error": str(e)}
            ) from e

        return IncrementOutcome(incremented=incremented, count=count)

    async def decrement(self, quota_id: str, period_key: str) -> None:
        """Undo one increment, never going below zero."""
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    stmt = (
                        update(QuotaPeriodCounterModel)
                        .where(
                            QuotaPeriodCounterModel.quota_id == quota_id,
                            QuotaPeriodCounterModel.period_key == period_key,
                            QuotaPeriodCounterModel.count > 0
                        )
                        .values(
                            count=QuotaPeriodCounterModel.count - 1,
                            updated_at=datetime.now(timezone.utc)
                        )
                    )
                    await session.execute(stmt)
        except OperationalError as e:
            raise ContentionRetryable(
                "counter_decrement",
                details={"quota_id": quota_id, "period_key": period_key, "error": str(e)}
            ) from e

    async def get_count(self, quota_id: str, period_key: str) -> int:
        """Current count, 0 when the row does not exist."""
        async with self._session_maker() as session:
            return await self._read_count(session, quota_id, period_key)

    async def _read_count(self, session: AsyncSession, quota_id: str, period_key: str) -> int:
        stmt = select(QuotaPeriodCounterModel.count).where(
            QuotaPeriodCounterModel.quota_id == quota_id,
            QuotaPeriodCounterModel.period_key == period_key
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() or 0

    async def _ensure_row(self, session: AsyncSession, quota_id: str, period_key: str) -> None:
        """Create the counter at zero; a concurrent creator winning is fine."""
        values = {
            "quota_id": quota_id,
            "period_key": period_key,
            "count": 0,
            "updated_at": datetime.now(timezone.utc),
        }
        dialect = session.get_bind().dialect.name

        if dialect == "postgresql":
            stmt = pg_insert(QuotaPeriodCounterModel).values(**values).on_conflict_do_nothing(
                index_elements=["quota_id", "period_key"]
            )
            await session.execute(stmt)
            return
        if dialect == "sqlite":
            stmt = sqlite_insert(QuotaPeriodCounterModel).values(**values).on_conflict_do_nothing(
                index_elements=["quota_id", "period_key"]
            )
            await session.execute(stmt)
            return

        # Other engines: insert inside a savepoint and tolerate the duplicate
        exists = await session.execute(
            select(QuotaPeriodCounterModel.id).where(
                QuotaPeriodCounterModel.quota_id == quota_id,
                QuotaPeriodCounterModel.period_key == period_key
            )
        )
        if exists.scalar_one_or_none() is not None:
            return
        try:
            async with session.begin_nested():
                await session.execute(insert(QuotaPeriodCounterModel).values(**values))
        except IntegrityError:
            # created concurrently
            return


class InMemoryQuotaProvider(IQuotaProvider):
    """Quota provider over a fixed list of quotas."""

    def __init__(self, quotas: Iterable[Quota] = ()):
        self._quotas = list(quotas)

    async def get_quotas(self, tenant_id: str, form_id: str) -> List[Quota]:
        return [
            q for q in self._quotas
            if q.tenant_id == tenant_id and q.form_id == form_id
        ]


class YAMLQuotaProvider(IQuotaProvider):
    """Quota provider reading the hot-reloaded YAML configuration."""

    def __init__(self, config_manager: YAMLConfigManager):
        self._config_manager = config_manager

    async def get_quotas(self, tenant_id: str, form_id: str) -> List[Quota]:
        return self._config_manager.config.quotas_for(tenant_id, form_id)
