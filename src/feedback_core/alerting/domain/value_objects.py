"""
Alerting Value Objects
======================

Immutable threshold configuration and pure functions deciding whether, how
severely and under which key a classified submission raises an alert.
"""

import re
from typing import Any, List, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, field_validator

from feedback_core.classification.domain import SentimentResult
from feedback_core.config import AlertLevel, VALID_ALERT_LEVELS, VALID_EMOTIONS
from feedback_core.shared.domain import Submission


class LevelBand(BaseModel):
    """Scores with magnitude at or above ``min_magnitude`` map to ``level``."""
    model_config = ConfigDict(frozen=True)

    min_magnitude: float = Field(..., ge=0.0, le=1.0)
    level: str

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Ensure level is valid."""
        if v not in VALID_ALERT_LEVELS:
            raise ValueError(f"level must be one of {VALID_ALERT_LEVELS}")
        return v


def _default_levels() -> List[LevelBand]:
    return [
        LevelBand(min_magnitude=0.7, level=AlertLevel.HIGH),
        LevelBand(min_magnitude=0.5, level=AlertLevel.MEDIUM),
    ]


class AlertThresholds(BaseModel):
    """
    When a classification warrants a CTL alert.

    A submission crosses when its score is at or below
    ``negative_score_threshold`` or it shows a trigger emotion or keyword,
    provided the sentiment confidence reaches ``min_confidence``.
    """
    model_config = ConfigDict(frozen=True)

    negative_score_threshold: float = Field(default=-0.5, ge=-1.0, le=0.0)
    trigger_emotions: List[str] = Field(default_factory=list)
    trigger_keywords: List[str] = Field(default_factory=list)
    min_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    levels: List[LevelBand] = Field(default_factory=_default_levels)
    default_level: str = Field(default=AlertLevel.LOW)
    correlation_fields: List[str] = Field(
        default_factory=lambda: ["customer_id", "email", "contact_email"]
    )

    @field_validator("trigger_emotions")
    @classmethod
    def validate_emotions(cls, v: List[str]) -> List[str]:
        """Ensure trigger emotions are known emotions."""
        unknown = [e for e in v if e not in VALID_EMOTIONS]
        if unknown:
            raise ValueError(f"unknown trigger emotions {unknown}; valid: {VALID_EMOTIONS}")
        return v

    @field_validator("trigger_keywords")
    @classmethod
    def normalise_keywords(cls, v: List[str]) -> List[str]:
        return [k.strip().lower() for k in v if k and k.strip()]

    @field_validator("levels")
    @classmethod
    def sort_levels(cls, v: List[LevelBand]) -> List[LevelBand]:
        """Strongest band first."""
        return sorted(v, key=lambda band: band.min_magnitude, reverse=True)

    @field_validator("default_level")
    @classmethod
    def validate_default_level(cls, v: str) -> str:
        if v not in VALID_ALERT_LEVELS:
            raise ValueError(f"default_level must be one of {VALID_ALERT_LEVELS}")
        return v


class AlertCalculator:
    """
    Pure functions for alert decisions.

    All methods are static and side-effect free.
    """

    @staticmethod
    def crossing_reasons(
        sentiment: SentimentResult,
        thresholds: AlertThresholds,
        text: str = ""
    ) -> List[str]:
        """
        Every threshold the classification crosses; empty means no alert.
        """
        if sentiment.confidence < thresholds.min_confidence:
            return []

        reasons = []
        if sentiment.score <= thresholds.negative_score_threshold:
            reasons.append(f"score {sentiment.score:.2f} <= {thresholds.negative_score_threshold:.2f}")

        for emotion in thresholds.trigger_emotions:
            if sentiment.primary_emotion == emotion or sentiment.emotions.get(emotion, 0) > 0:
                reasons.append(f"emotion:{emotion}")

        if thresholds.trigger_keywords:
            lowered = text.lower()
            keywords = {k.lower() for k in sentiment.keywords}
            for keyword in thresholds.trigger_keywords:
                if keyword in keywords or re.search(rf"\b{re.escape(keyword)}\b", lowered):
                    reasons.append(f"keyword:{keyword}")

        return reasons

    @staticmethod
    def alert_level(score: float, thresholds: AlertThresholds) -> str:
        """Map score magnitude to a level (default: >= 0.7 high, >= 0.5 medium, else low)."""
        magnitude = abs(score)
        for band in thresholds.levels:
            if magnitude >= band.min_magnitude:
                return band.level
        return thresholds.default_level

    @staticmethod
    def dimension_for(submission: Submission, fields: List[str]) -> Optional[str]:
        """First non-empty configured identity field, as ``field:value``."""
        for name in fields:
            value: Any = None
            if name == "customer_id" and submission.customer_id:
                value = submission.customer_id
            if value is None:
                value = submission.data.get(name) if isinstance(submission.data, dict) else None
                if isinstance(value, dict) and "value" in value:
                    value = value["value"]
            if value is None and isinstance(submission.respondent, dict):
                value = submission.respondent.get(name)
            if isinstance(value, bool) or not isinstance(value, (str, int, float)):
                continue
            text = str(value).strip()
            if not text:
                continue
            if "email" in name:
                text = text.lower()
            return f"{name}:{text}"
        return None

    @staticmethod
    def correlation_key(
        submission: Submission,
        fields: List[str],
        override: Optional[str] = None
    ) -> str:
        """
        Deduplication key ``tenant:form:dimension``.

        Tenant and form ids are percent-encoded so a ``:`` inside them cannot
        shift the boundary between parts.

        The dimension is the caller's override, else the first identity field
        present on the submission, else the submission itself.
        """
        dimension = override or AlertCalculator.dimension_for(submission, fields)
        if not dimension:
            dimension = f"submission:{submission.id}"
        tenant = quote(submission.tenant_id, safe="")
        form = quote(submission.form_id, safe="")
        return f"{tenant}:{form}:{dimension}"

    @staticmethod
    def flag_reason(sentiment: SentimentResult) -> str:
        """Human-readable reason, e.g. ``Angry sentiment detected (score: -0.80, High confidence)``."""
        if sentiment.confidence > 0.8:
            confidence_text = "High confidence"
        elif sentiment.confidence > 0.6:
            confidence_text = "Medium confidence"
        else:
            confidence_text = "Low confidence"
        emotion = (sentiment.primary_emotion or "negative").capitalize()
        return f"{emotion} sentiment detected (score: {sentiment.score:.2f}, {confidence_text})"

    @staticmethod
    def notes(sentiment: SentimentResult, reasons: List[str]) -> str:
        """Alert notes: flag reason plus the thresholds crossed."""
        return f"{AlertCalculator.flag_reason(sentiment)} [{', '.join(reasons)}]"
