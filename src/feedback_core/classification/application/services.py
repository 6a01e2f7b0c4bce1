"""
Classification Application Services
====================================

Orchestrates sentiment analysis and persona assignment for one admitted
submission.

Sentiment may come from an external provider (LLM); the deterministic
lexicon analyzer is always available as the fallback.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from feedback_core.classification.domain import (
    Classification, GCC_RULES, LexiconSentimentAnalyzer, PersonaAssignment,
    PersonaMatcher, PersonaRule, SentimentResult, TextAnswer,
    assign_persona, extract_text_answers
)
from feedback_core.core import ConfigurationError
from feedback_core.shared.domain import Submission
from feedback_core.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Provider Interfaces ==========

class ISentimentProvider(ABC):
    """Interface for external sentiment scoring (NLP service, LLM)."""

    @abstractmethod
    async def analyze(self, answers: List[TextAnswer]) -> SentimentResult:
        """Score free-text answers; raise on any failure."""


class IPersonaRuleProvider(ABC):
    """Interface for persona rule configuration access."""

    @abstractmethod
    async def get_rules(self, tenant_id: str) -> List[PersonaRule]:
        """Get the persona rules that apply to a tenant."""


class StaticPersonaRuleProvider(IPersonaRuleProvider):
    """Same rule set for every tenant (the GCC preset by default)."""

    def __init__(self, rules: Optional[List[PersonaRule]] = None):
        self._rules = list(rules) if rules is not None else list(GCC_RULES)

    async def get_rules(self, tenant_id: str) -> List[PersonaRule]:
        return list(self._rules)


# ========== Application Services ==========

class ClassificationService:
    """
    Computes sentiment and persona for a submission.

    Never fails on malformed answers or attributes: those fall back to a
    neutral sentiment and the GENERAL persona. Only a rule provider failure
    (``ConfigurationError``) propagates.
    """

    def __init__(
        self,
        rule_provider: Optional[IPersonaRuleProvider] = None,
        sentiment_provider: Optional[ISentimentProvider] = None,
        analyzer: Optional[LexiconSentimentAnalyzer] = None
    ):
        self._rule_provider = rule_provider or StaticPersonaRuleProvider()
        self._sentiment_provider = sentiment_provider
        self._analyzer = analyzer or LexiconSentimentAnalyzer()

    async def classify(self, submission: Submission) -> Classification:
        """
        Classify a submission and record the result on ``submission.analysis``.

        Returns:
            Classification with sentiment and persona

        Raises:
            ConfigurationError: Persona rules could not be loaded
        """
        answers = extract_text_answers(submission.data)
        sentiment = await self.analyze_sentiment(answers)
        persona = await self.assign_persona(submission)

        classification = Classification(sentiment=sentiment, persona=persona)
        submission.analysis["sentiment"] = sentiment.to_dict()
        submission.analysis["persona"] = persona.to_dict()

        logger.info(
            "Submission classified",
            extra={
                "submission_id": submission.id,
                "sentiment": sentiment.sentiment,
                "score": sentiment.score,
                "persona_id": persona.persona_id,
                "sentiment_source": sentiment.source
            }
        )
        return classification

    async def analyze_sentiment(self, answers: List[TextAnswer]) -> SentimentResult:
        """Score answers with the external provider, falling back to the lexicon."""
        if not answers:
            return SentimentResult.neutral()

        if self._sentiment_provider is not None:
            try:
                return await self._sentiment_provider.analyze(answers)
            except Exception as e:
                logger.warning(
                    "Sentiment provider failed, using lexicon analyzer",
                    extra={"error": str(e), "provider": type(self._sentiment_provider).__name__}
                )

        return self._analyzer.analyze(answers)

    async def assign_persona(self, submission: Submission) -> PersonaAssignment:
        """Match the submission's attributes against the tenant's rules."""
        try:
            rules = await self._rule_provider.get_rules(submission.tenant_id)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"Failed to load persona rules for tenant {submission.tenant_id}: {e}",
                {"tenant_id": submission.tenant_id}
            ) from e

        attributes = PersonaMatcher.attributes_for(submission.data, submission.respondent)
        return assign_persona(attributes, rules)
