"""
Sentiment Analysis
==================

Deterministic lexicon-based sentiment analysis for free-text survey
answers.

Scoring uses a weighted lexicon with intensifiers and a three-word negation
window; extreme words weigh more than mild ones. Keywords, themes, emotions
and language are derived from the same text. Everything here is pure: the
same answers always give the same result.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from feedback_core.classification.domain.entities import SentimentResult
from feedback_core.config import Emotion, SentimentLabel, VALID_EMOTIONS

# Answers at or below this many characters (after trimming) are ignored
MIN_ANSWER_LENGTH = 10

POSITIVE_THRESHOLD = 0.3
NEGATIVE_THRESHOLD = -0.3

MAX_KEYWORDS = 10


@dataclass(frozen=True)
class TextAnswer:
    """A free-text answer and the form field it came from."""
    field_name: str
    text: str

    @property
    def label(self) -> str:
        """Readable field label, e.g. ``deliveryFeedback`` -> ``Delivery Feedback``."""
        spaced = re.sub(r"[_-]", " ", self.field_name)
        spaced = re.sub(r"([A-Z])", r" \1", spaced)
        return " ".join(w.capitalize() for w in spaced.split())


# ========== Text extraction ==========

def _unwrap(value: Any) -> Any:
    """Unwrap survey widget values such as ``{"value": "...", "text": "..."}``."""
    if isinstance(value, Mapping) and "value" in value:
        return value["value"]
    return value


def _as_answer(value: Any) -> Optional[str]:
    if isinstance(value, str):
        text = value.strip()
        if len(text) > MIN_ANSWER_LENGTH:
            return text
    return None


def extract_text_answers(data: Optional[Mapping[str, Any]]) -> List[TextAnswer]:
    """
    Collect the free-text answers of a submission.

    String answers longer than ten characters are kept (trimmed).
    ``{"value": ...}`` wrappers are unwrapped and one level of nested answer
    objects (multi-part questions) is flattened as ``parent.child``.
    Anything else (numbers, choices, lists) is skipped.
    """
    if not isinstance(data, Mapping):
        return []

    answers = []
    for field_name, raw in data.items():
        value = _unwrap(raw)

        text = _as_answer(value)
        if text:
            answers.append(TextAnswer(str(field_name), text))

        if isinstance(value, Mapping):
            for nested_key, nested_value in value.items():
                nested_text = _as_answer(nested_value)
                if nested_text:
                    answers.append(TextAnswer(f"{field_name}.{nested_key}", nested_text))

    return answers


_EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_PHONE = re.compile(r"(?:\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b")
_LONG_NUMBER = re.compile(r"\b\d{10,}\b")


def redact_pii(text: str) -> str:
    """Replace e-mail addresses and phone numbers before text leaves the process."""
    if not text:
        return text
    redacted = _EMAIL.sub("[EMAIL]", text)
    redacted = _PHONE.sub("[PHONE]", redacted)
    return _LONG_NUMBER.sub("[PHONE]", redacted)


# ========== Scoring helpers ==========

def clamp_score(score: Any) -> float:
    """Clamp to [-1, 1]; non-numbers become 0."""
    if isinstance(score, bool) or not isinstance(score, (int, float)) or score != score:
        return 0.0
    return max(-1.0, min(1.0, float(score)))


def clamp_confidence(confidence: Any) -> float:
    """Clamp to [0, 1]; non-numbers become 0.5."""
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or confidence != confidence:
        return 0.5
    return max(0.0, min(1.0, float(confidence)))


def label_for_score(score: float) -> str:
    """positive at >= 0.3, negative at <= -0.3, neutral between."""
    if score >= POSITIVE_THRESHOLD:
        return SentimentLabel.POSITIVE
    if score <= NEGATIVE_THRESHOLD:
        return SentimentLabel.NEGATIVE
    return SentimentLabel.NEUTRAL


# ========== Keywords, themes, language ==========

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "have", "has", "had", "do", "does", "did", "will", "would",
    "should", "could", "may", "might", "must", "can", "it", "this", "that",
    "these", "those", "i", "you", "he", "she", "we", "they", "what",
    "which", "who", "when", "where", "why", "how", "very", "too", "so",
})

THEME_PATTERNS = {
    "pricing": ["price", "cost", "expensive", "cheap", "affordable", "payment", "billing"],
    "customer_service": ["service", "support", "help", "staff", "representative", "agent"],
    "product_quality": ["quality", "product", "broken", "defect", "works", "functioning"],
    "delivery": ["delivery", "shipping", "arrived", "late", "fast", "slow"],
    "usability": ["easy", "difficult", "user", "interface", "navigate", "confusing"],
    "performance": ["performance", "speed", "fast", "slow", "responsive", "lag"],
}


def extract_keywords(text: str) -> List[str]:
    """First ten unique lowercase words longer than three characters, stop words removed."""
    cleaned = re.sub(r"[^\w\s]", " ", text.lower())
    keywords: List[str] = []
    for word in cleaned.split():
        if len(word) > 3 and word not in STOP_WORDS and word not in keywords:
            keywords.append(word)
            if len(keywords) == MAX_KEYWORDS:
                break
    return keywords


def identify_themes(text: str, keywords: List[str]) -> List[str]:
    """Themes whose patterns appear in the text or keywords, in pattern order."""
    lower = text.lower()
    themes = []
    for theme, patterns in THEME_PATTERNS.items():
        if any(p in lower or p in keywords for p in patterns):
            themes.append(theme)
    return themes


_ARABIC = re.compile(r"[\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF]")
_LATIN = re.compile(r"[A-Za-z]")


def detect_language(text: str) -> str:
    """``ar`` when Arabic script dominates the letters, otherwise ``en``."""
    arabic = len(_ARABIC.findall(text))
    latin = len(_LATIN.findall(text))
    return "ar" if arabic > latin else "en"


# ========== Analyzer ==========

class LexiconSentimentAnalyzer:
    """
    Weighted-lexicon sentiment scorer.

    Negation flips the next three words at 80% strength; an intensifier
    scales the following sentiment word only.
    """

    POSITIVE_WORDS = {
        # High intensity
        "excellent": 1.0, "outstanding": 1.0, "perfect": 1.0,
        "amazing": 0.95, "fantastic": 0.95, "exceptional": 0.95, "phenomenal": 0.95,
        "wonderful": 0.9, "superb": 0.9, "brilliant": 0.9, "incredible": 0.9,
        "delighted": 0.9, "love": 0.85,
        # Medium intensity
        "great": 0.75, "recommend": 0.75, "impressed": 0.75,
        "efficient": 0.7, "reliable": 0.7, "happy": 0.7, "valuable": 0.7,
        "helpful": 0.65, "professional": 0.65, "satisfied": 0.65, "pleased": 0.65,
        "effective": 0.65, "quality": 0.65,
        "good": 0.6, "friendly": 0.6, "useful": 0.6, "nice": 0.55,
        # Low intensity
        "positive": 0.5, "decent": 0.4, "reasonable": 0.4, "fair": 0.4,
        "thanks": 0.4, "okay": 0.35, "fine": 0.35, "acceptable": 0.35, "adequate": 0.35,
        # Arabic
        "ممتاز": 0.95, "رائع": 0.9, "سعيد": 0.7, "جيد": 0.6, "شكرا": 0.4,
    }

    NEGATIVE_WORDS = {
        # High intensity
        "terrible": -1.0, "awful": -1.0, "worst": -1.0,
        "horrible": -0.95, "disgusting": -0.95, "appalling": -0.95,
        "atrocious": -0.95, "abysmal": -0.95,
        "dreadful": -0.9, "unacceptable": -0.9, "pathetic": -0.9,
        "furious": -0.9, "hate": -0.85, "angry": -0.8,
        # Medium intensity
        "frustrating": -0.75, "frustrated": -0.75, "useless": -0.75,
        "rude": -0.75, "waste": -0.75,
        "disappointed": -0.7, "disappointing": -0.7, "unhelpful": -0.7,
        "unprofessional": -0.7, "unreliable": -0.7, "broken": -0.7, "failed": -0.7,
        "bad": -0.65, "annoying": -0.65, "annoyed": -0.65,
        "poor": -0.6, "slow": -0.55, "complaint": -0.55, "error": -0.55,
        "problem": -0.5, "underwhelming": -0.5,
        # Low intensity
        "issue": -0.45, "mediocre": -0.45, "lacking": -0.45, "confusing": -0.45,
        "confused": -0.45, "unclear": -0.4, "difficult": -0.4, "complicated": -0.4,
        # Arabic
        "فظيع": -1.0, "غاضب": -0.8, "سيء": -0.65, "سيئ": -0.65, "سيئة": -0.65,
        "بطيء": -0.55, "مشكلة": -0.5,
    }

    INTENSIFIERS = {
        "extremely": 1.5, "incredibly": 1.5, "utterly": 1.5,
        "absolutely": 1.4, "completely": 1.4, "exceptionally": 1.4,
        "totally": 1.35,
        "very": 1.3, "highly": 1.3, "thoroughly": 1.3, "remarkably": 1.3,
        "really": 1.25, "especially": 1.25,
        "so": 1.2, "particularly": 1.2, "such": 1.15,
        "جدا": 1.3,
    }

    NEGATORS = frozenset({
        "not", "no", "never", "neither", "nobody", "nothing", "nowhere",
        "n't", "cannot", "can't", "won't", "wouldn't", "couldn't", "shouldn't",
        "isn't", "aren't", "wasn't", "weren't", "don't", "doesn't", "didn't",
        "hardly", "barely",
        "لا", "ليس", "لم", "غير",
    })

    EMOTION_WORDS = {
        Emotion.HAPPY: {
            "love", "happy", "amazing", "fantastic", "wonderful", "excellent",
            "delighted", "perfect", "brilliant", "great", "ممتاز", "رائع", "سعيد",
        },
        Emotion.SATISFIED: {
            "good", "satisfied", "pleased", "fine", "helpful", "recommend",
            "okay", "decent", "reliable", "efficient", "thanks", "جيد", "شكرا",
        },
        Emotion.FRUSTRATED: {
            "frustrating", "frustrated", "slow", "annoying", "annoyed", "useless",
            "broken", "failed", "problem", "issue", "error", "waste", "بطيء", "مشكلة",
        },
        Emotion.ANGRY: {
            "terrible", "awful", "worst", "hate", "rude", "unacceptable",
            "disgusting", "horrible", "furious", "angry", "pathetic", "فظيع", "غاضب",
        },
        Emotion.DISAPPOINTED: {
            "disappointed", "disappointing", "poor", "mediocre", "underwhelming",
            "lacking", "bad", "unhelpful", "سيء", "سيئ", "سيئة",
        },
        Emotion.CONFUSED: {
            "confusing", "confused", "complicated", "difficult", "unclear",
        },
    }

    NEGATION_WINDOW = 3
    NEGATION_FACTOR = 0.8

    _TOKEN = re.compile(r"[\w']+")

    def analyze(self, answers: List[TextAnswer]) -> SentimentResult:
        """Score a submission's free-text answers as one body of text."""
        text = "\n".join(a.text for a in answers).strip()
        if not text:
            return SentimentResult.neutral()
        return self.analyze_text(text)

    def analyze_text(self, text: str) -> SentimentResult:
        """Score a single text."""
        words = self._TOKEN.findall(text.lower())
        if not words:
            return SentimentResult.neutral()

        scores: List[float] = []
        emotion_hits: Dict[str, int] = {}
        negation_countdown = 0
        intensifier = 1.0

        for word in words:
            if word in self.NEGATORS:
                negation_countdown = self.NEGATION_WINDOW
                continue

            if word in self.INTENSIFIERS:
                intensifier = self.INTENSIFIERS[word]
                continue

            negated = negation_countdown > 0
            base = self.POSITIVE_WORDS.get(word, self.NEGATIVE_WORDS.get(word))
            if base is not None:
                final = base * intensifier
                if negated:
                    final = -final * self.NEGATION_FACTOR
                scores.append(final)
                self._count_emotion(word, base, negated, emotion_hits)

            intensifier = 1.0
            if negation_countdown > 0:
                negation_countdown -= 1

        if scores:
            weighted = [s * (1 + abs(s) * 0.5) for s in scores]
            score = clamp_score(sum(weighted) / len(weighted))
            evidence = sum(abs(s) for s in scores)
            confidence = min(1.0, len(scores) / 5.0) * (1 - 1 / (1 + evidence))
        else:
            score = 0.0
            confidence = 0.2

        emotions, primary = self._emotion_profile(emotion_hits)
        keywords = extract_keywords(text)

        return SentimentResult(
            sentiment=label_for_score(score),
            score=round(score, 3),
            confidence=round(confidence, 3),
            emotions=emotions,
            primary_emotion=primary,
            keywords=keywords,
            themes=identify_themes(text, keywords),
            language=detect_language(text),
        )

    def _count_emotion(self, word: str, base: float, negated: bool, hits: Dict[str, int]) -> None:
        if negated:
            # "not good" reads as disappointment; "not bad" carries no emotion
            if base > 0:
                hits[Emotion.DISAPPOINTED] = hits.get(Emotion.DISAPPOINTED, 0) + 1
            return
        for emotion, vocabulary in self.EMOTION_WORDS.items():
            if word in vocabulary:
                hits[emotion] = hits.get(emotion, 0) + 1

    @staticmethod
    def _emotion_profile(hits: Dict[str, int]) -> tuple:
        """Normalise emotion hits to shares and pick the dominant one."""
        total = sum(hits.values())
        if total == 0:
            return {Emotion.NEUTRAL: 1.0}, Emotion.NEUTRAL

        emotions = {
            emotion: round(hits[emotion] / total, 3)
            for emotion in VALID_EMOTIONS
            if hits.get(emotion)
        }
        # Ties resolved by the canonical emotion order
        primary = max(
            emotions,
            key=lambda e: (hits[e], -VALID_EMOTIONS.index(e))
        )
        return emotions, primary
