"""
Classification External Service Adapters
=========================================

LLM-backed sentiment provider implementing ``ISentimentProvider``.

Uses the OpenAI async client. Any transport or parsing failure is raised as
``LLMException``; the classification service then falls back to the
lexicon analyzer.
"""

import time
from typing import List, Optional

from openai import AsyncOpenAI

from feedback_core.classification.application.services import ISentimentProvider
from feedback_core.classification.domain import SentimentResult, TextAnswer
from feedback_core.classification.domain.prompts import (
    SentimentPromptBuilder, extract_json_object, sentiment_from_payload
)
from feedback_core.config import settings
from feedback_core.core import ConfigurationError, LLMException
from feedback_core.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class LLMSentimentProvider(ISentimentProvider):
    """
    OpenAI chat-completion sentiment provider.

    Answers are PII-redacted before they are sent.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        if client is None:
            key = api_key or settings.openai_api_key
            if not key:
                raise ConfigurationError("OpenAI API key not configured")
            client = AsyncOpenAI(api_key=key)

        self._client = client
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

    async def analyze(self, answers: List[TextAnswer]) -> SentimentResult:
        """
        Score answers with the model.

        Raises:
            LLMException: The call failed or the answer was not usable
        """
        messages = [
            {"role": "system", "content": SentimentPromptBuilder.get_system_prompt()},
            {"role": "user", "content": SentimentPromptBuilder.build_prompt(answers)}
        ]

        start_time = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                response_format={"type": "json_object"}
            )
            content = response.choices[0].message.content
        except Exception as e:
            raise LLMException(f"Sentiment completion failed: {e}") from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        try:
            payload = extract_json_object(content)
            result = sentiment_from_payload(payload, answers)
        except ValueError as e:
            raise LLMException(f"Failed to parse sentiment response: {e}") from e

        usage = getattr(response, "usage", None)
        logger.info(
            "LLM sentiment completed",
            extra={
                "model": self._model,
                "latency_ms": latency_ms,
                "tokens_used": getattr(usage, "total_tokens", None),
                "score": result.score
            }
        )
        return result
