"""
Classification Application Layer
================================

Classification service and provider interfaces.
"""

from feedback_core.classification.application.services import (
    ClassificationService,
    IPersonaRuleProvider,
    ISentimentProvider,
    StaticPersonaRuleProvider,
)

__all__ = [
    "ClassificationService",
    "IPersonaRuleProvider",
    "ISentimentProvider",
    "StaticPersonaRuleProvider",
]
