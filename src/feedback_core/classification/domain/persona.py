"""
Persona Matching
================

Rule-based persona assignment over flat respondent attributes.

A rule matches when all of its conditions hold. The highest-scoring match
wins; equal scores go to the lowest rule id, so the outcome never depends
on the order rules were configured in. Malformed attributes never raise:
the affected condition is simply false.
"""

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from feedback_core.classification.domain.entities import (
    PersonaAssignment, PersonaMatch, PersonaRule, RuleCondition
)
from feedback_core.config import FALLBACK_PERSONA_ID, FALLBACK_PERSONA_NAME
from feedback_core.core import ValidationIgnorable
from feedback_core.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_NUMBER = re.compile(r"^[-+]?\d+(\.\d+)?$")

_MISSING = object()


def normalize_value(value: Any) -> Any:
    """
    Normalise form-style values before comparison.

    ``"42"`` -> 42.0, ``"true"``/``"false"`` -> bool, surrounding whitespace
    removed from strings. Other values pass through.
    """
    if isinstance(value, str):
        text = value.strip()
        lowered = text.lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
        if _NUMBER.match(text):
            return float(text)
        return text
    if isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _equals(left: Any, right: Any) -> bool:
    """Type-aware equality; strings compare case-insensitively."""
    if _is_number(left) and _is_number(right):
        return left == right
    if isinstance(left, bool) and isinstance(right, bool):
        return left is right
    if isinstance(left, str) and isinstance(right, str):
        return left.casefold() == right.casefold()
    if type(left) is not type(right):
        raise ValidationIgnorable(
            "Incomparable values",
            {"left": type(left).__name__, "right": type(right).__name__}
        )
    return left == right


def _as_sequence(value: Any) -> Sequence:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    raise ValidationIgnorable("Expected a list of values", {"value": repr(value)})


def _ordered(left: Any, right: Any) -> Tuple[float, float]:
    if _is_number(left) and _is_number(right):
        return left, right
    raise ValidationIgnorable(
        "Ordering requires numbers",
        {"left": repr(left), "right": repr(right)}
    )


def _evaluate(operator: str, actual: Any, expected: Any) -> bool:
    if operator == "==":
        return _equals(actual, expected)
    if operator == "!=":
        return not _equals(actual, expected)
    if operator in (">", ">=", "<", "<="):
        a, b = _ordered(actual, expected)
        if operator == ">":
            return a > b
        if operator == ">=":
            return a >= b
        if operator == "<":
            return a < b
        return a <= b
    if operator in ("in", "not_in"):
        options = [normalize_value(o) for o in _as_sequence(expected)]
        found = any(_safe_equals(actual, o) for o in options)
        return found if operator == "in" else not found
    if operator == "between":
        bounds = [normalize_value(b) for b in _as_sequence(expected)]
        if len(bounds) != 2:
            raise ValidationIgnorable("between needs exactly two bounds", {"value": repr(expected)})
        low, high = _ordered(*bounds)
        x, _ = _ordered(actual, low)
        return low <= x <= high
    if operator == "contains":
        if isinstance(actual, str) and isinstance(expected, str):
            return expected.casefold() in actual.casefold()
        if isinstance(actual, (list, tuple, set, frozenset)):
            return any(_safe_equals(normalize_value(item), expected) for item in actual)
        raise ValidationIgnorable("contains needs text or a list", {"value": repr(actual)})
    raise ValidationIgnorable("Unknown operator", {"operator": operator})


def _safe_equals(left: Any, right: Any) -> bool:
    try:
        return _equals(left, right)
    except ValidationIgnorable:
        return False


def _rule_id_key(rule_id: str) -> tuple:
    """Numeric ids compare numerically and sort before other ids."""
    text = str(rule_id)
    if _NUMBER.match(text):
        return (0, float(text), text)
    return (1, 0.0, text)


class PersonaMatcher:
    """Pure functions for evaluating persona rules."""

    @staticmethod
    def condition_holds(condition: RuleCondition, attributes: Mapping[str, Any]) -> bool:
        """
        Evaluate one condition. Missing fields and type mismatches are false.
        """
        raw = attributes.get(condition.field, _MISSING) if isinstance(attributes, Mapping) else _MISSING
        if raw is _MISSING or raw is None:
            return False

        actual = normalize_value(raw)
        expected = condition.value
        if condition.operator not in ("in", "not_in", "between"):
            expected = normalize_value(expected)

        try:
            return _evaluate(condition.operator, actual, expected)
        except ValidationIgnorable as e:
            logger.debug(
                "Persona condition not evaluable",
                extra={"field": condition.field, "operator": condition.operator, "reason": e.message}
            )
            return False

    @staticmethod
    def rule_matches(rule: PersonaRule, attributes: Mapping[str, Any]) -> bool:
        """A rule matches when every condition holds (a rule without conditions always matches)."""
        return all(PersonaMatcher.condition_holds(c, attributes) for c in rule.conditions)

    @staticmethod
    def attributes_for(data: Optional[Mapping[str, Any]], respondent: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Flat attribute record for matching.

        Scalar answers from the submission data, overridden by the CRM
        respondent record.
        """
        attributes: Dict[str, Any] = {}
        if isinstance(data, Mapping):
            for key, value in data.items():
                if isinstance(value, Mapping) and "value" in value:
                    value = value["value"]
                if isinstance(value, (str, int, float, bool)):
                    attributes[str(key)] = value
        if isinstance(respondent, Mapping):
            for key, value in respondent.items():
                attributes[str(key)] = value
        return attributes


def assign_persona(attributes: Mapping[str, Any], rules: Iterable[PersonaRule]) -> PersonaAssignment:
    """
    Assign the best-matching persona.

    Args:
        attributes: Flat respondent attributes
        rules: Candidate rules, in any order

    Returns:
        PersonaAssignment; the GENERAL fallback when nothing matches
    """
    matched: List[PersonaRule] = [
        rule for rule in rules if PersonaMatcher.rule_matches(rule, attributes)
    ]
    if not matched:
        return PersonaAssignment(persona_id=FALLBACK_PERSONA_ID, name=FALLBACK_PERSONA_NAME)

    matched.sort(key=lambda r: (-r.score, _rule_id_key(r.id)))
    winner = matched[0]

    return PersonaAssignment(
        persona_id=winner.persona_id,
        name=winner.name,
        score=winner.score,
        matched_rule_ids=[r.id for r in matched],
        matches=[PersonaMatch(rule_id=r.id, persona_id=r.persona_id, score=r.score) for r in matched],
    )
