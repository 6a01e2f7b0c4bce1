"""
Alerting Infrastructure Layer
=============================

Alert stores, ORM model, threshold provider and ticketing integration.
"""

from feedback_core.alerting.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    HttpTicketGateway,
    TicketLinkScheduler,
)
from feedback_core.alerting.infrastructure.models import CTLAlertModel
from feedback_core.alerting.infrastructure.repositories import (
    InMemoryAlertStore,
    SQLAlchemyAlertStore,
    YAMLThresholdProvider,
)

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "HttpTicketGateway",
    "TicketLinkScheduler",
    "CTLAlertModel",
    "InMemoryAlertStore",
    "SQLAlchemyAlertStore",
    "YAMLThresholdProvider",
]
