"""Heuristic answer quality scoring.

Scores one answer unit in [0, 0.95] from keyword coverage of its topic,
length and discourse markers. The constants are tuned against human
marking and are applied in a fixed order: base score, additive bonuses,
multiplicative penalties, then the 0.95 cap.
"""

from app.models.marking import QualityAssessment
from app.services.topic_classifier import count_keyword_matches, topic_keywords


MIN_ANSWER_CHARS = 10

BASE_SCORE = 0.85
COVERAGE_WEIGHT = 0.30
MAX_SCORE = 0.95

# (minimum word count, bonus)
LENGTH_BONUSES = ((40, 0.06), (80, 0.08), (120, 0.04))
ATTEMPT_BONUS_WORDS = 15
ATTEMPT_BONUS = 0.04

EXPLANATION_BONUS = 0.09
EXAMPLE_BONUS = 0.06

VERY_SHORT_WORDS = 10
VERY_SHORT_PENALTY = 0.65
SHORT_WORDS = 20
SHORT_PENALTY = 0.95
OFF_TOPIC_PENALTY = 0.75

EXPLANATION_WORDS = (
    "because", "therefore", "since", "due to", "as a result",
    "explain", "reason", "why", "how",
)
EXAMPLE_WORDS = (
    "example", "such as", "for instance", "like", "including", "e.g.", "i.e.",
)

REASONING = {
    "excellent": "Comprehensive answer with good keyword coverage and detailed explanation",
    "good": "Well-structured answer addressing key concepts",
    "satisfactory": "Adequate answer covering basic requirements",
    "poor": "Incomplete answer missing key concepts",
    "missing": "Insufficient or no answer provided",
}
EMPTY_ANSWER_REASONING = "No answer provided or answer too brief"


def quality_label(score: float) -> str:
    """Map a score to its quality band."""
    if score >= 0.85:
        return "excellent"
    if score >= 0.75:
        return "good"
    if score >= 0.60:
        return "satisfactory"
    if score >= 0.40:
        return "poor"
    return "missing"


def score_answer(text: str, topic: str) -> QualityAssessment:
    """
    Score the quality of one answer.

    Args:
        text: Answer unit text
        topic: Topic assigned by the topic classifier

    Returns:
        QualityAssessment with band, bounded score and reasoning
    """
    if not text or len(text.strip()) < MIN_ANSWER_CHARS:
        return QualityAssessment(quality="missing", score=0.0, reasoning=EMPTY_ANSWER_REASONING)

    lowered = text.lower()
    word_count = len(text.split())
    keywords = topic_keywords(topic)
    coverage = count_keyword_matches(text, keywords) / len(keywords) if keywords else 0.0

    score = BASE_SCORE
    score += coverage * COVERAGE_WEIGHT

    for threshold, bonus in LENGTH_BONUSES:
        if word_count >= threshold:
            score += bonus

    if any(word in lowered for word in EXPLANATION_WORDS):
        score += EXPLANATION_BONUS
    if any(word in lowered for word in EXAMPLE_WORDS):
        score += EXAMPLE_BONUS

    if word_count >= ATTEMPT_BONUS_WORDS:
        score += ATTEMPT_BONUS

    if word_count < VERY_SHORT_WORDS:
        score *= VERY_SHORT_PENALTY
    elif word_count < SHORT_WORDS:
        score *= SHORT_PENALTY

    if coverage == 0 and keywords:
        score *= OFF_TOPIC_PENALTY

    score = min(score, MAX_SCORE)
    label = quality_label(score)

    return QualityAssessment(quality=label, score=score, reasoning=REASONING[label])
