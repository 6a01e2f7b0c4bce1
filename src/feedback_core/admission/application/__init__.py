"""
Admission Application Layer
===========================

Application services and store interfaces for quota admission.
"""

from feedback_core.admission.application.services import (
    AdmissionService,
    ICounterStore,
    IQuotaProvider,
)

__all__ = [
    "AdmissionService",
    "ICounterStore",
    "IQuotaProvider",
]
