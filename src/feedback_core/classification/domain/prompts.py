"""
Sentiment Prompts
=================

Prompt construction and answer parsing for LLM-backed sentiment analysis.

All prompt logic lives here; the provider in the infrastructure layer only
transports it.
"""

import json
from typing import Any, Dict, List, Optional

from feedback_core.classification.domain.entities import SentimentResult
from feedback_core.classification.domain.sentiment import (
    TextAnswer, clamp_confidence, clamp_score, detect_language,
    extract_keywords, identify_themes, label_for_score, redact_pii
)
from feedback_core.config import Emotion, VALID_EMOTIONS


class SentimentPromptBuilder:
    """Builds prompts for survey sentiment analysis."""

    SYSTEM_PROMPT = """You are a sentiment analysis system for customer survey responses.

Analyze the emotional tone of open-ended answers and respond ONLY with JSON.
Answers may be in English or Arabic."""

    RESPONSE_FORMAT = """{
  "aggregate": {
    "score": <number between -1.0 and 1.0>,
    "emotion": "<one of: happy, satisfied, frustrated, angry, disappointed, confused, neutral>",
    "confidence": <number between 0.0 and 1.0>
  },
  "emotions": {"<emotion>": <intensity between 0.0 and 1.0>},
  "keywords": ["<keyword1>", "<keyword2>"],
  "themes": ["<theme1>", "<theme2>"],
  "summary": "<brief 1-2 sentence summary of overall sentiment>"
}"""

    SCORING_GUIDE = """Scoring guidelines:
- -1.0 to -0.5: Very negative (angry, furious, terrible experience)
- -0.5 to -0.3: Negative (disappointed, frustrated, dissatisfied)
- -0.3 to 0.3: Neutral (mixed feelings, factual responses)
- 0.3 to 0.5: Positive (satisfied, pleased)
- 0.5 to 1.0: Very positive (delighted, extremely happy)"""

    @classmethod
    def build_prompt(cls, answers: List[TextAnswer]) -> str:
        """Build the user prompt; answers are PII-redacted first."""
        numbered = "\n\n".join(
            f'{i}. {a.label} ({a.field_name}):\n"{redact_pii(a.text)}"'
            for i, a in enumerate(answers, start=1)
        )
        return f"""Analyze the sentiment of the following survey responses. Return a JSON object with this exact structure:

{cls.RESPONSE_FORMAT}

{cls.SCORING_GUIDE}

Survey Responses:
{numbered}

Return ONLY the JSON object, no additional text."""

    @classmethod
    def get_system_prompt(cls) -> str:
        """Get the system prompt for sentiment analysis."""
        return cls.SYSTEM_PROMPT


def extract_json_object(text: Optional[str]) -> Dict[str, Any]:
    """
    Parse the JSON object in a model answer, ignoring any text around it.

    Raises:
        ValueError: No JSON object could be parsed
    """
    if not text or not isinstance(text, str):
        raise ValueError("Empty model response")

    body = text.strip()
    start = body.find("{")
    end = body.rfind("}")
    if start != -1 and end != -1:
        body = body[start:end + 1]

    parsed = json.loads(body)
    if not isinstance(parsed, dict):
        raise ValueError("Model response is not a JSON object")
    return parsed


def sentiment_from_payload(payload: Dict[str, Any], answers: List[TextAnswer]) -> SentimentResult:
    """
    Map a model's JSON answer onto the canonical sentiment shape.

    Scores and confidences are clamped, unknown emotions become neutral, and
    keywords/themes/language fall back to the local extractors when the
    model omits them.

    Raises:
        ValueError: ``aggregate.score`` is missing or not a number
    """
    aggregate = payload.get("aggregate")
    if not isinstance(aggregate, dict):
        raise ValueError("Missing aggregate section")
    raw_score = aggregate.get("score")
    if isinstance(raw_score, bool) or not isinstance(raw_score, (int, float)):
        raise ValueError("Missing aggregate.score")

    score = clamp_score(raw_score)
    confidence = clamp_confidence(aggregate.get("confidence"))

    primary = aggregate.get("emotion")
    if primary not in VALID_EMOTIONS:
        primary = Emotion.NEUTRAL

    emotions: Dict[str, float] = {}
    raw_emotions = payload.get("emotions")
    if isinstance(raw_emotions, dict):
        for name, intensity in raw_emotions.items():
            key = name if name in VALID_EMOTIONS else Emotion.NEUTRAL
            emotions[key] = max(emotions.get(key, 0.0), clamp_confidence(intensity))
    if not emotions:
        emotions = {primary: 1.0}

    text = "\n".join(a.text for a in answers)

    keywords = payload.get("keywords")
    if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
        keywords = extract_keywords(text)

    themes = payload.get("themes")
    if not isinstance(themes, list) or not all(isinstance(t, str) for t in themes):
        themes = identify_themes(text, keywords)

    summary = payload.get("summary")

    return SentimentResult(
        sentiment=label_for_score(score),
        score=round(score, 3),
        confidence=round(confidence, 3),
        emotions=emotions,
        primary_emotion=primary,
        keywords=keywords[:10],
        themes=themes,
        language=detect_language(text),
        summary=summary if isinstance(summary, str) else None,
        source="llm",
    )
