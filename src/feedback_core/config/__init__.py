"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    """
    Library settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="feedback-core", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Root log level")
    debug: bool = Field(default=False, description="Enable debug mode")

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/feedback",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Tenant Configuration ==========
    feedback_config_path: Path = Field(
        default=Path("feedback_config.yaml"),
        description="YAML file with quotas, persona rules and alert thresholds"
    )
    config_max_staleness_seconds: float = Field(
        default=30.0,
        description="Upper bound on how long a cached configuration may be served",
        ge=0
    )

    # ========== Counter / Alert Store Contention ==========
    contention_max_attempts: int = Field(
        default=5,
        description="Attempts for a contended store operation before surfacing it",
        ge=1
    )
    contention_initial_delay: float = Field(
        default=0.01,
        description="First backoff delay in seconds",
        ge=0
    )
    contention_max_delay: float = Field(
        default=0.5,
        description="Backoff ceiling in seconds",
        ge=0
    )

    # ========== Ticket Integration ==========
    ticket_webhook_url: Optional[str] = Field(
        default=None,
        description="Endpoint of the ticketing system that opens CTL follow-up tickets"
    )
    ticket_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for ticket API calls",
        ge=0.1,
        le=30
    )
    ticket_retry_interval: int = Field(
        default=300,
        description="Seconds between out-of-band retries of unlinked alerts",
        ge=10
    )

    # ========== Sentiment LLM ==========
    openai_api_key: Optional[str] = Field(
        default=None,
        description="API key for LLM-backed sentiment analysis"
    )
    llm_model: str = Field(
        default="gpt-4o-mini",
        description="Model used for sentiment analysis"
    )
    llm_temperature: float = Field(
        default=0.0,
        description="Temperature for sentiment prompts",
        ge=0.0,
        le=1.0
    )
    llm_max_tokens: int = Field(
        default=600,
        description="Max tokens for sentiment responses",
        ge=1,
        le=8000
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class PeriodType(str):
    """Quota reset periods."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    TOTAL = "total"


class SentimentLabel(str):
    """Sentiment polarity labels."""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class Emotion(str):
    """Emotions recognised in free-text answers."""
    HAPPY = "happy"
    SATISFIED = "satisfied"
    FRUSTRATED = "frustrated"
    ANGRY = "angry"
    DISAPPOINTED = "disappointed"
    CONFUSED = "confused"
    NEUTRAL = "neutral"


class AlertLevel(str):
    """CTL alert severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AlertStatus(str):
    """CTL alert lifecycle statuses."""
    OPEN = "open"
    RESOLVED = "resolved"


# ========== Lists for validation ==========

VALID_PERIOD_TYPES = [
    PeriodType.DAY, PeriodType.WEEK, PeriodType.MONTH, PeriodType.TOTAL
]
VALID_SENTIMENTS = [
    SentimentLabel.POSITIVE, SentimentLabel.NEGATIVE, SentimentLabel.NEUTRAL
]
VALID_EMOTIONS = [
    Emotion.HAPPY, Emotion.SATISFIED, Emotion.FRUSTRATED, Emotion.ANGRY,
    Emotion.DISAPPOINTED, Emotion.CONFUSED, Emotion.NEUTRAL
]
VALID_ALERT_LEVELS = [AlertLevel.LOW, AlertLevel.MEDIUM, AlertLevel.HIGH]
VALID_ALERT_STATUSES = [AlertStatus.OPEN, AlertStatus.RESOLVED]

# Persona assigned when no configured rule matches
FALLBACK_PERSONA_ID = "GENERAL"
FALLBACK_PERSONA_NAME = "General"
