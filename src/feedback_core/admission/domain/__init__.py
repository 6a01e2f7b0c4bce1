"""
Admission Domain Layer
======================

Domain layer for the quota admission module.

Contains:
- Entities: AdmissionDecision, QuotaPeriodCounter, CounterTouch, QuotaUsage
- Value Objects: Quota (configuration), PeriodKeyCalculator

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from feedback_core.admission.domain.entities import (
    AdmissionDecision,
    CounterTouch,
    IncrementOutcome,
    QuotaPeriodCounter,
    QuotaUsage,
)
from feedback_core.admission.domain.value_objects import Quota, PeriodKeyCalculator

__all__ = [
    # Entities
    "AdmissionDecision",
    "CounterTouch",
    "IncrementOutcome",
    "QuotaPeriodCounter",
    "QuotaUsage",
    # Value Objects
    "Quota",
    "PeriodKeyCalculator",
]
