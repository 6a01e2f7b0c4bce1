"""Tests for feedback_core/classification/domain/sentiment.py and prompts.py

Covers:
- extract_text_answers: length filter, value unwrapping, nested answers
- LexiconSentimentAnalyzer: labels, negation, emotions, determinism
- keywords, themes, language detection, PII redaction
- sentiment_from_payload: clamping and emotion mapping of model answers
"""

from __future__ import annotations

import pytest

from feedback_core.classification.domain import (
    LexiconSentimentAnalyzer,
    SentimentPromptBuilder,
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
from feedback_core.classification.domain.prompts import extract_json_object, sentiment_from_payload


@pytest.fixture()
def analyzer() -> LexiconSentimentAnalyzer:
    return LexiconSentimentAnalyzer()


class TestExtractTextAnswers:
    """Verify which answers count as free text."""

    def test_short_and_non_text_answers_skipped(self) -> None:
        answers = extract_text_answers({
            "rating": 2,
            "ok": "Good",
            "comment": "   The staff were really friendly   ",
            "choices": ["a", "b"],
        })

        assert answers == [TextAnswer("comment", "The staff were really friendly")]

    def test_value_wrappers_and_nested_answers(self) -> None:
        answers = extract_text_answers({
            "q1": {"value": "Delivery took far too long", "type": "text"},
            "q2": {"value": {"what": "Checkout page is confusing", "score": 3}},
        })

        assert [(a.field_name, a.text) for a in answers] == [
            ("q1", "Delivery took far too long"),
            ("q2.what", "Checkout page is confusing"),
        ]

    def test_non_mapping_data(self) -> None:
        assert extract_text_answers(None) == []

    def test_field_label(self) -> None:
        assert TextAnswer("deliveryFeedback", "x").label == "Delivery Feedback"


class TestLexiconSentiment:
    """Verify lexicon scoring."""

    def test_negative_text(self, analyzer) -> None:
        result = analyzer.analyze_text("The support was terrible and the staff were rude")

        assert result.sentiment == "negative"
        assert result.score == -1.0
        assert result.primary_emotion == "angry"
        assert result.emotions == {"angry": 1.0}
        assert 0.0 < result.confidence < 1.0
        assert result.source == "lexicon"

    def test_positive_text_with_intensifier(self, analyzer) -> None:
        result = analyzer.analyze_text("Excellent service, the staff were very helpful")

        assert result.sentiment == "positive"
        assert result.score > 0.3
        assert result.primary_emotion == "happy"
        assert result.themes == ["customer_service"]
        assert result.keywords == ["excellent", "service", "staff", "helpful"]

    def test_negated_positive_reads_as_disappointment(self, analyzer) -> None:
        result = analyzer.analyze_text("The product is not good at all")

        assert result.score < -0.3
        assert result.sentiment == "negative"
        assert result.primary_emotion == "disappointed"

    def test_negation_window_is_three_words(self, analyzer) -> None:
        inside = analyzer.analyze_text("not really that good")
        outside = analyzer.analyze_text("not one two three good")

        assert inside.score < 0
        assert outside.score > 0

    def test_text_without_sentiment_words_is_neutral(self, analyzer) -> None:
        result = analyzer.analyze_text("I visited the branch on Tuesday afternoon")

        assert result.sentiment == "neutral"
        assert result.score == 0.0
        assert result.confidence == 0.2
        assert result.emotions == {"neutral": 1.0}

    def test_no_answers_gives_neutral(self, analyzer) -> None:
        result = analyzer.analyze([])

        assert result.sentiment == "neutral"
        assert result.confidence == 0.0

    def test_deterministic(self, analyzer) -> None:
        answers = [
            TextAnswer("a", "Delivery was slow and the app is confusing"),
            TextAnswer("b", "But the staff were friendly and helpful"),
        ]

        assert analyzer.analyze(answers) == analyzer.analyze(list(answers))

    def test_arabic_text(self, analyzer) -> None:
        result = analyzer.analyze_text("الخدمة ممتاز جدا شكرا لكم")

        assert result.language == "ar"
        assert result.sentiment == "positive"


class TestHelpers:
    """Verify scoring and text helpers."""

    @pytest.mark.parametrize(
        "score, label",
        [(0.3, "positive"), (0.29, "neutral"), (-0.29, "neutral"), (-0.3, "negative")],
    )
    def test_label_boundaries(self, score: float, label: str) -> None:
        assert label_for_score(score) == label

    def test_clamping(self) -> None:
        assert clamp_score(-3) == -1.0
        assert clamp_score("bad") == 0.0
        assert clamp_score(float("nan")) == 0.0
        assert clamp_confidence(1.4) == 1.0
        assert clamp_confidence(None) == 0.5

    def test_keywords_unique_and_capped(self) -> None:
        text = " ".join(f"word{i} word{i}" for i in range(15))

        keywords = extract_keywords(text)

        assert len(keywords) == 10
        assert keywords[0] == "word0"
        assert len(set(keywords)) == 10

    def test_themes(self) -> None:
        text = "Too expensive and delivery was late"

        assert identify_themes(text, extract_keywords(text)) == ["pricing", "delivery"]

    def test_language_defaults_to_english(self) -> None:
        assert detect_language("Great app") == "en"
        assert detect_language("1234") == "en"

    def test_redact_pii(self) -> None:
        redacted = redact_pii("Mail me at jane.doe@example.com or call +1 555-123-4567")

        assert "jane.doe" not in redacted
        assert "555" not in redacted
        assert "[EMAIL]" in redacted
        assert "[PHONE]" in redacted


class TestModelPayload:
    """Verify mapping of LLM answers onto the canonical shape."""

    def test_json_extracted_from_fenced_answer(self) -> None:
        payload = extract_json_object('```json\n{"aggregate": {"score": 0.5}}\n```')

        assert payload == {"aggregate": {"score": 0.5}}

    def test_unparseable_answer_raises(self) -> None:
        with pytest.raises(ValueError):
            extract_json_object("no json here")

    def test_payload_clamped_and_emotions_mapped(self) -> None:
        answers = [TextAnswer("comment", "Shipping was late and support was useless")]
        payload = {
            "aggregate": {"score": -1.7, "confidence": 0.9, "emotion": "furious"},
            "emotions": {"angry": 0.8, "furious": 0.5},
            "summary": "Unhappy with delivery",
        }

        result = sentiment_from_payload(payload, answers)

        assert result.score == -1.0
        assert result.sentiment == "negative"
        assert result.primary_emotion == "neutral"
        assert result.emotions == {"angry": 0.8, "neutral": 0.5}
        assert result.source == "llm"
        assert "delivery" in result.themes
        assert result.summary == "Unhappy with delivery"

    def test_missing_score_raises(self) -> None:
        with pytest.raises(ValueError):
            sentiment_from_payload({"aggregate": {"confidence": 0.4}}, [])

    def test_prompt_redacts_answers(self) -> None:
        prompt = SentimentPromptBuilder.build_prompt(
            [TextAnswer("contactNote", "Reach me at jane.doe@example.com please")]
        )

        assert "jane.doe@example.com" not in prompt
        assert "[EMAIL]" in prompt
        assert "Contact Note" in prompt
