"""
Classification Domain Layer
===========================

Pure sentiment scoring and persona rule matching.

Contains:
- Entities: SentimentResult, PersonaRule, RuleCondition, PersonaAssignment, Classification
- LexiconSentimentAnalyzer and text helpers
- PersonaMatcher / assign_persona
- Shipped rule presets (GCC)
"""

from feedback_core.classification.domain.entities import (
    Classification,
    PersonaAssignment,
    PersonaMatch,
    PersonaRule,
    RuleCondition,
    SentimentResult,
    VALID_OPERATORS,
)
from feedback_core.classification.domain.persona import (
    PersonaMatcher,
    assign_persona,
    normalize_value,
)
from feedback_core.classification.domain.presets import GCC_RULES, get_preset
from feedback_core.classification.domain.prompts import SentimentPromptBuilder
from feedback_core.classification.domain.sentiment import (
    LexiconSentimentAnalyzer,
    TextAnswer,
    clamp_confidence,
    clamp_score,
    detect_language,
    extract_keywords,
    extract_text_answers,
    identify_themes,
    label_for_score,
    redact_pii,
)

__all__ = [
    # Entities
    "Classification",
    "PersonaAssignment",
    "PersonaMatch",
    "PersonaRule",
    "RuleCondition",
    "SentimentResult",
    "VALID_OPERATORS",
    # Persona
    "PersonaMatcher",
    "assign_persona",
    "normalize_value",
    "GCC_RULES",
    "get_preset",
    "SentimentPromptBuilder",
    # Sentiment
    "LexiconSentimentAnalyzer",
    "TextAnswer",
    "clamp_confidence",
    "clamp_score",
    "detect_language",
    "extract_keywords",
    "extract_text_answers",
    "identify_themes",
    "label_for_score",
    "redact_pii",
]
