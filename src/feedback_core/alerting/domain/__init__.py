"""
Alerting Domain Layer
=====================

Contains:
- Entities: CTLAlert, CorrelationResult
- Value Objects: AlertThresholds, LevelBand, AlertCalculator

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from feedback_core.alerting.domain.entities import CorrelationResult, CTLAlert
from feedback_core.alerting.domain.value_objects import (
    AlertCalculator,
    AlertThresholds,
    LevelBand,
)

__all__ = [
    # Entities
    "CTLAlert",
    "CorrelationResult",
    # Value Objects
    "AlertCalculator",
    "AlertThresholds",
    "LevelBand",
]
