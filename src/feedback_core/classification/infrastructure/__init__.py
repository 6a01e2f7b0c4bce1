"""
Classification Infrastructure Layer
===================================

External sentiment provider and rule configuration source.
"""

from feedback_core.classification.infrastructure.external import LLMSentimentProvider
from feedback_core.classification.infrastructure.repositories import YAMLPersonaRuleProvider

__all__ = [
    "LLMSentimentProvider",
    "YAMLPersonaRuleProvider",
]
