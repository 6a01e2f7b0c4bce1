"""
Alerting Infrastructure Repositories
====================================

Concrete implementations of the alert store and threshold provider.

- InMemoryAlertStore: reference store for single-process hosts and tests
- SQLAlchemyAlertStore: engine-neutral SQL store keyed on a unique open_key
- YAMLThresholdProvider: thresholds from the hot-reloaded YAML configuration
"""

import copy
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedback_core.alerting.application.services import IAlertStore, IThresholdProvider
from feedback_core.alerting.domain import AlertThresholds, CTLAlert
from feedback_core.alerting.infrastructure.models import CTLAlertModel
from feedback_core.config import AlertStatus
from feedback_core.core import ContentionRetryable, RepositoryException
from feedback_core.shared.infrastructure.config_manager import YAMLConfigManager


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored instants are UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class InMemoryAlertStore(IAlertStore):
    """
    Alert store backed by dicts.

    An index from correlation key to the open alert's id is updated in the
    same critical section as the alert itself.
    """

    def __init__(self):
        self._alerts: Dict[str, CTLAlert] = {}
        self._open_by_key: Dict[str, str] = {}
        self._lock = threading.Lock()

    async def find_or_create_open(self, candidate: CTLAlert) -> Tuple[CTLAlert, bool]:
        with self._lock:
            existing_id = self._open_by_key.get(candidate.correlation_key)
            if existing_id is not None:
                return copy.deepcopy(self._alerts[existing_id]), False

            stored = copy.deepcopy(candidate)
            self._alerts[stored.id] = stored
            self._open_by_key[stored.correlation_key] = stored.id
            return copy.deepcopy(stored), True

    async def get(self, alert_id: str) -> Optional[CTLAlert]:
        with self._lock:
            alert = self._alerts.get(alert_id)
            return copy.deepcopy(alert) if alert else None

    async def get_open_by_key(self, correlation_key: str) -> Optional[CTLAlert]:
        with self._lock:
            alert_id = self._open_by_key.get(correlation_key)
            return copy.deepcopy(self._alerts[alert_id]) if alert_id else None

    async def record_severity(
        self,
        alert_id: str,
        score_value: float,
        sentiment: str,
        notes: Optional[str]
    ) -> bool:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None or not alert.is_open or not alert.is_less_severe_than(score_value):
                return False
            alert.score_value = score_value
            alert.sentiment = sentiment
            alert.notes = notes
            alert.updated_at = datetime.now(timezone.utc)
            return True

    async def link_ticket(self, alert_id: str, ticket_id: str) -> bool:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                raise RepositoryException(f"Alert {alert_id} not found")
            if alert.ticket_id is not None:
                return False
            alert.ticket_id = ticket_id
            alert.updated_at = datetime.now(timezone.utc)
            return True

    async def resolve(self, alert_id: str, resolved_by: str, at: datetime) -> CTLAlert:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                raise RepositoryException(f"Alert {alert_id} not found")
            if alert.is_open:
                alert.mark_resolved(resolved_by, at)
                if self._open_by_key.get(alert.correlation_key) == alert.id:
                    del self._open_by_key[alert.correlation_key]
            return copy.deepcopy(alert)

    async def list_unlinked_open(self, limit: int = 100) -> List[CTLAlert]:
        with self._lock:
            unlinked = [
                a for a in self._alerts.values()
                if a.is_open and a.ticket_id is None
            ]
            unlinked.sort(key=lambda a: a.created_at)
            return [copy.deepcopy(a) for a in unlinked[:limit]]

    async def count_open(self, correlation_key: str) -> int:
        """Number of open alerts for a key (always 0 or 1)."""
        with self._lock:
            return sum(
                1 for a in self._alerts.values()
                if a.is_open and a.correlation_key == correlation_key
            )


class SQLAlchemyAlertStore(IAlertStore):
    """
    SQLAlchemy implementation of the alert store.

    Find-or-create inserts with ``open_key`` set; the unique constraint
    rejects a second open alert for the key, and the loser re-reads the
    winner.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def find_or_create_open(self, candidate: CTLAlert) -> Tuple[CTLAlert, bool]:
        key = candidate.correlation_key
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    existing = await self._get_open_model(session, key)
                    if existing is not None:
                        return self._to_entity(existing), False
                    session.add(self._to_model(candidate))
            return copy.deepcopy(candidate), True
        except IntegrityError:
            async with self._session_maker() as session:
                winner = await self._get_open_model(session, key)
            if winner is None:
                # Winner was resolved between our insert and re-read
                raise ContentionRetryable("alert_find_or_create", details={"correlation_key": key})
            return self._to_entity(winner), False
        except OperationalError as e:
            raise ContentionRetryable(
                "alert_find_or_create",
                details={"correlation_key": key, "error": str(e)}
            ) from e

    async def get(self, alert_id: str) -> Optional[CTLAlert]:
        alert_uuid = self._parse_id(alert_id)
        if alert_uuid is None:
            return None
        async with self._session_maker() as session:
            model = await session.get(CTLAlertModel, alert_uuid)
            return self._to_entity(model) if model else None

    async def get_open_by_key(self, correlation_key: str) -> Optional[CTLAlert]:
        async with self._session_maker() as session:
            model = await self._get_open_model(session, correlation_key)
            return self._to_entity(model) if model else None

    async def record_severity(
        self,
        alert_id: str,
        score_value: float,
        sentiment: str,
        notes: Optional[str]
    ) -> bool:
        alert_uuid = self._parse_id(alert_id)
        if alert_uuid is None:
            return False
        stmt = (
            update(CTLAlertModel)
            .where(
                CTLAlertModel.id == alert_uuid,
                CTLAlertModel.status == AlertStatus.OPEN,
                CTLAlertModel.score_value > score_value
            )
            .values(
                score_value=score_value,
                sentiment=sentiment,
                notes=notes,
                updated_at=datetime.now(timezone.utc)
            )
        )
        return await self._execute_update(stmt, "alert_record_severity", alert_id)

    async def link_ticket(self, alert_id: str, ticket_id: str) -> bool:
        alert_uuid = self._parse_id(alert_id)
        if alert_uuid is None:
            raise RepositoryException(f"Alert {alert_id} not found")
        stmt = (
            update(CTLAlertModel)
            .where(
                CTLAlertModel.id == alert_uuid,
                CTLAlertModel.ticket_id.is_(None)
            )
            .values(ticket_id=ticket_id, updated_at=datetime.now(timezone.utc))
        )
        return await self._execute_update(stmt, "alert_link_ticket", alert_id)

    async def resolve(self, alert_id: str, resolved_by: str, at: datetime) -> CTLAlert:
        alert_uuid = self._parse_id(alert_id)
        if alert_uuid is None:
            raise RepositoryException(f"Alert {alert_id} not found")
        stmt = (
            update(CTLAlertModel)
            .where(
                CTLAlertModel.id == alert_uuid,
                CTLAlertModel.status == AlertStatus.OPEN
            )
            .values(
                status=AlertStatus.RESOLVED,
                open_key=None,
                resolved_by=resolved_by,
                resolved_at=at,
                updated_at=at
            )
        )
        await self._execute_update(stmt, "alert_resolve", alert_id)

        alert = await self.get(alert_id)
        if alert is None:
            raise RepositoryException(f"Alert {alert_id} not found")
        return alert

    async def list_unlinked_open(self, limit: int = 100) -> List[CTLAlert]:
        stmt = (
            select(CTLAlertModel)
            .where(
                CTLAlertModel.status == AlertStatus.OPEN,
                CTLAlertModel.ticket_id.is_(None)
            )
            .order_by(CTLAlertModel.created_at)
            .limit(limit)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]

    async def _execute_update(self, stmt, operation: str, alert_id: str) -> bool:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    return result.rowcount == 1
        except OperationalError as e:
            raise ContentionRetryable(
                operation,
                details={"alert_id": alert_id, "error": str(e)}
            ) from e

    @staticmethod
    async def _get_open_model(session: AsyncSession, correlation_key: str) -> Optional[CTLAlertModel]:
        stmt = select(CTLAlertModel).where(CTLAlertModel.open_key == correlation_key)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _parse_id(alert_id: str) -> Optional[UUID]:
        try:
            return UUID(str(alert_id))
        except ValueError:
            return None

    @staticmethod
    def _to_model(alert: CTLAlert) -> CTLAlertModel:
        return CTLAlertModel(
            id=UUID(alert.id),
            tenant_id=alert.tenant_id,
            form_id=alert.form_id,
            submission_id=alert.submission_id,
            correlation_key=alert.correlation_key,
            open_key=alert.correlation_key if alert.is_open else None,
            alert_level=alert.alert_level,
            score_value=alert.score_value,
            score_type=alert.score_type,
            sentiment=alert.sentiment,
            status=alert.status,
            notes=alert.notes,
            ticket_id=alert.ticket_id,
            resolved_at=alert.resolved_at,
            resolved_by=alert.resolved_by,
            created_at=alert.created_at,
            updated_at=alert.updated_at
        )

    @staticmethod
    def _to_entity(model: CTLAlertModel) -> CTLAlert:
        return CTLAlert(
            id=str(model.id),
            tenant_id=model.tenant_id,
            form_id=model.form_id,
            submission_id=model.submission_id,
            correlation_key=model.correlation_key,
            alert_level=model.alert_level,
            score_value=model.score_value,
            score_type=model.score_type,
            sentiment=model.sentiment,
            status=model.status,
            notes=model.notes,
            ticket_id=model.ticket_id,
            resolved_at=_aware(model.resolved_at),
            resolved_by=model.resolved_by,
            created_at=_aware(model.created_at),
            updated_at=_aware(model.updated_at)
        )


class YAMLThresholdProvider(IThresholdProvider):
    """Thresholds from YAML: form override, then tenant override, then default."""

    def __init__(self, config_manager: YAMLConfigManager):
        self._config_manager = config_manager

    async def get_thresholds(self, tenant_id: str, form_id: str) -> AlertThresholds:
        return self._config_manager.config.thresholds_for(tenant_id, form_id)
