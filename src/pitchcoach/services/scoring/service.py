from __future__ import annotations

import re
from typing import Callable, Dict, List, Tuple

from src.pitchcoach.domain.models.coaching_session import FeedbackMetric
from src.pitchcoach.domain.models.scoring import ScoringResult

MIN_SCORE = 60
MAX_SCORE = 100

_WORD_RE = re.compile(r"[a-z']+")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

FILLER_WORDS = {"um", "uh", "er", "ah", "like", "basically", "actually", "literally", "so", "well"}
HEDGES = ("i think", "maybe", "probably", "sort of", "kind of", "perhaps", "i guess", "i feel like")
CONNECTORS = {"first", "second", "then", "next", "finally", "because", "therefore", "however", "so", "also"}
POSITIVE_WORDS = {"great", "excellent", "happy", "glad", "excited", "love", "thanks", "thank", "welcome", "good"}

DEFAULT_FEEDBACK = "Good effort. Continue practicing to improve."

FEEDBACK: Dict[str, Tuple[str, str, str]] = {
    # (strong, adequate, needs work)
    "Clarity": (
        "Your speech is very clear and easy to understand.",
        "Mostly clear; trimming filler words will sharpen it further.",
        "Consider enunciating your words more clearly and cutting filler words.",
    ),
    "Pace": (
        "Your pacing is perfect for this context.",
        "The speed variation adds good dynamics; watch the longest sentences.",
        "Try to slow down slightly and break long sentences up for better comprehension.",
    ),
    "Tone": (
        "Warm, positive tone throughout.",
        "Tone is neutral; a little more warmth would help.",
        "Try adding more energy and positive language.",
    ),
    "Confidence": (
        "You sound sure of your points.",
        "A few hedges crept in; state your points directly.",
        "Avoid hedging phrases like 'I think' or 'maybe'.",
    ),
    "Vocabulary": (
        "Varied and precise word choice.",
        "Vocabulary is solid; vary repeated words.",
        "Many words repeat; try synonyms and more specific terms.",
    ),
    "Engagement": (
        "You speak directly to your audience.",
        "Address the listener more often to keep them involved.",
        "Ask questions and speak to the listener to keep them engaged.",
    ),
    "Structure": (
        "Your points follow a clear structure.",
        "Some structure is present; signpost transitions more.",
        "Use transitions like 'first', 'then' and 'finally' to organize your points.",
    ),
}


def _clamp(value: float) -> int:
    return int(round(max(MIN_SCORE, min(MAX_SCORE, value))))


def _feedback_for(category: str, score: int) -> str:
    options = FEEDBACK.get(category)
    if options is None:
        return DEFAULT_FEEDBACK
    if score >= 85:
        return options[0]
    if score >= 70:
        return options[1]
    return options[2]


class _TextFeatures:
    def __init__(self, text: str) -> None:
        lowered = text.lower()
        self.lowered = lowered
        self.words: List[str] = _WORD_RE.findall(lowered)
        self.sentences = [s for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()] or [text]
        self.word_count = max(len(self.words), 1)

    def ratio(self, predicate: Callable[[str], bool]) -> float:
        return sum(1 for word in self.words if predicate(word)) / self.word_count

    def phrase_count(self, phrases: Tuple[str, ...]) -> int:
        padded = f" {' '.join(self.words)} "
        return sum(padded.count(f" {phrase} ") for phrase in phrases)


class ScoringService:
    """Deterministic text heuristics for speaking feedback.

    Each category scores 60-100; the overall score is the rounded mean.
    """

    CATEGORIES = ("Clarity", "Pace", "Tone", "Confidence", "Vocabulary", "Engagement", "Structure")

    def analyze(self, text: str) -> ScoringResult:
        features = _TextFeatures(text)
        scores = {
            "Clarity": self._clarity(features),
            "Pace": self._pace(features),
            "Tone": self._tone(features),
            "Confidence": self._confidence(features),
            "Vocabulary": self._vocabulary(features),
            "Engagement": self._engagement(features),
            "Structure": self._structure(features),
        }
        metrics = [
            FeedbackMetric(category=category, score=scores[category], feedback=_feedback_for(category, scores[category]))
            for category in self.CATEGORIES
        ]
        overall = round(sum(m.score for m in metrics) / len(metrics))
        return ScoringResult(overall_score=overall, metrics=metrics)

    def _clarity(self, f: _TextFeatures) -> int:
        return _clamp(100 - f.ratio(lambda w: w in FILLER_WORDS) * 250)

    def _pace(self, f: _TextFeatures) -> int:
        words_per_sentence = len(f.words) / len(f.sentences)
        # 8-20 words per sentence reads as a comfortable speaking pace.
        if 8 <= words_per_sentence <= 20:
            return MAX_SCORE
        distance = 8 - words_per_sentence if words_per_sentence < 8 else words_per_sentence - 20
        return _clamp(100 - distance * 3)

    def _tone(self, f: _TextFeatures) -> int:
        return _clamp(75 + f.ratio(lambda w: w in POSITIVE_WORDS) * 300 + f.lowered.count("!") * 2)

    def _confidence(self, f: _TextFeatures) -> int:
        return _clamp(100 - f.phrase_count(HEDGES) * 100 / len(f.sentences) * 0.5)

    def _vocabulary(self, f: _TextFeatures) -> int:
        if not f.words:
            return MIN_SCORE
        diversity = len(set(f.words)) / len(f.words)
        return _clamp(50 + diversity * 50)

    def _engagement(self, f: _TextFeatures) -> int:
        audience = f.ratio(lambda w: w in {"you", "your", "we", "us", "our"})
        return _clamp(70 + audience * 200 + f.lowered.count("?") * 5)

    def _structure(self, f: _TextFeatures) -> int:
        return _clamp(65 + f.ratio(lambda w: w in CONNECTORS) * 400)


scoring_service = ScoringService()
