"""
Admission Infrastructure Layer
==============================

Counter stores, ORM models and quota providers.
"""

from feedback_core.admission.infrastructure.models import QuotaPeriodCounterModel
from feedback_core.admission.infrastructure.repositories import (
    InMemoryCounterStore,
    InMemoryQuotaProvider,
    SQLAlchemyCounterStore,
    YAMLQuotaProvider,
)

__all__ = [
    "QuotaPeriodCounterModel",
    "InMemoryCounterStore",
    "InMemoryQuotaProvider",
    "SQLAlchemyCounterStore",
    "YAMLQuotaProvider",
]
