"""
Classification Domain Entities
===============================

Sentiment results, persona rules and the combined classification record.

Rules are configuration (pydantic models validated on load); results are
plain dataclasses produced by the engine.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from feedback_core.config import Emotion, SentimentLabel


# ========== Persona Rules ==========

VALID_OPERATORS = ["==", "!=", ">", ">=", "<", "<=", "in", "not_in", "between", "contains"]

# "age >= 25" style conditions; longer operators first so ">=" wins over ">"
_EXPRESSION = re.compile(r"^\s*([\w.]+)\s*(>=|<=|==|!=|>|<)\s*(.+?)\s*$")


class RuleCondition(BaseModel):
    """A single ``field operator value`` predicate over respondent attributes."""
    model_config = ConfigDict(frozen=True)

    field: str = Field(..., min_length=1)
    operator: str = Field(default="==")
    value: Any = None

    @field_validator("operator")
    @classmethod
    def validate_operator(cls, v: str) -> str:
        """Ensure the operator is supported."""
        if v not in VALID_OPERATORS:
            raise ValueError(f"operator must be one of {VALID_OPERATORS}")
        return v

    @classmethod
    def parse(cls, expression: str) -> "RuleCondition":
        """
        Build a condition from an expression such as ``"income >= 25000"``.

        The right-hand side is kept as text; numeric and boolean text is
        normalised at evaluation time.
        """
        match = _EXPRESSION.match(expression)
        if not match:
            raise ValueError(f"Unparseable condition: {expression!r}")
        field_name, operator, raw = match.groups()
        return cls(field=field_name, operator=operator, value=raw.strip("'\""))


class PersonaRule(BaseModel):
    """
    Persona assignment rule: all conditions must hold for the rule to match.

    Ties between matching rules of equal score go to the lowest ``id``.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    persona_id: str = Field(..., min_length=1)
    label: Optional[str] = None
    score: float = Field(default=0.0)
    conditions: List[RuleCondition] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        """Accept integer ids from YAML."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("conditions", mode="before")
    @classmethod
    def parse_expressions(cls, v):
        """Allow string expressions alongside mapping conditions."""
        if not isinstance(v, list):
            return v
        return [RuleCondition.parse(c) if isinstance(c, str) else c for c in v]

    @property
    def name(self) -> str:
        """Display name, defaulting to the persona id."""
        return self.label or self.persona_id


# ========== Results ==========

@dataclass
class SentimentResult:
    """
    Sentiment of a submission's free-text answers.

    ``score`` is in [-1, 1], ``confidence`` in [0, 1]. ``emotions`` maps each
    detected emotion to its share of the emotional evidence.
    """
    sentiment: str
    score: float
    confidence: float
    emotions: Dict[str, float] = field(default_factory=dict)
    primary_emotion: str = Emotion.NEUTRAL
    keywords: List[str] = field(default_factory=list)
    themes: List[str] = field(default_factory=list)
    language: str = "en"
    summary: Optional[str] = None
    source: str = "lexicon"

    @classmethod
    def neutral(cls) -> "SentimentResult":
        """Result for a submission without analysable text."""
        return cls(
            sentiment=SentimentLabel.NEUTRAL,
            score=0.0,
            confidence=0.0,
            emotions={Emotion.NEUTRAL: 1.0},
        )

    def to_dict(self) -> dict:
        """Convert to the dictionary stored in ``submission.analysis``."""
        return {
            "sentiment": self.sentiment,
            "score": self.score,
            "confidence": self.confidence,
            "emotions": dict(self.emotions),
            "primary_emotion": self.primary_emotion,
            "keywords": list(self.keywords),
            "themes": list(self.themes),
            "language": self.language,
            "summary": self.summary,
            "source": self.source,
        }


@dataclass(frozen=True)
class PersonaMatch:
    """A rule that matched, with its score."""
    rule_id: str
    persona_id: str
    score: float


@dataclass
class PersonaAssignment:
    """Winning persona plus every rule that matched."""
    persona_id: str
    name: str
    score: float = 0.0
    matched_rule_ids: List[str] = field(default_factory=list)
    matches: List[PersonaMatch] = field(default_factory=list)

    @property
    def is_fallback(self) -> bool:
        """True when no rule matched."""
        return not self.matches

    def to_dict(self) -> dict:
        """Convert to the dictionary stored in ``submission.analysis``."""
        return {
            "persona_id": self.persona_id,
            "name": self.name,
            "score": self.score,
            "matched_rule_ids": list(self.matched_rule_ids),
            "matches": [
                {"rule_id": m.rule_id, "persona_id": m.persona_id, "score": m.score}
                for m in self.matches
            ],
        }


@dataclass
class Classification:
    """Sentiment and persona of one submission."""
    sentiment: SentimentResult
    persona: PersonaAssignment

    def to_dict(self) -> Dict[str, Union[dict, None]]:
        return {
            "sentiment": self.sentiment.to_dict(),
            "persona": self.persona.to_dict(),
        }
