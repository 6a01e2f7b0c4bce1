"""
Alerting Application Layer
==========================

Correlation and ticket-link services plus store/gateway interfaces.
"""

from feedback_core.alerting.application.services import (
    CorrelationService,
    IAlertStore,
    IThresholdProvider,
    ITicketGateway,
    StaticThresholdProvider,
    TicketLinkService,
    load_thresholds,
)

__all__ = [
    "CorrelationService",
    "IAlertStore",
    "IThresholdProvider",
    "ITicketGateway",
    "StaticThresholdProvider",
    "TicketLinkService",
    "load_thresholds",
]
