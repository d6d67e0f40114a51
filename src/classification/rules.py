"""
Deterministic keyword rules used when the model path is unavailable.

All functions are pure and total: any string, including the empty string,
yields a classification.
"""

import re
from collections import Counter
from typing import List, Tuple, NamedTuple

from src.models.schemas import Sentiment, Urgency, MAX_KEYWORDS


DEFAULT_THEME_LABEL = "User Experience"

# Checked in order, first match wins
THEME_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("documentation", "docs", "guide"), "Documentation Requests"),
    (("bug", "error", "broken", "fail"), "Bug Reports"),
    (("feature", "add", "request"), "Feature Requests"),
    (("performance", "slow", "latency"), "Performance Issues"),
    (("price", "cost", "billing"), "Pricing Concerns"),
    (("integration", "connect", "api"), "Integration Problems"),
    (("security", "secure", "auth"), "Security Questions"),
    (("migration", "migrate", "move"), "Migration Support"),
]

THEME_LABELS = [label for _, label in THEME_RULES] + ["API Improvements", DEFAULT_THEME_LABEL]

POSITIVE_WORDS = ("great", "excellent", "love", "amazing", "good", "perfect", "thanks", "helpful")
# "fail" is a Bug Reports theme term, not a sentiment signal
NEGATIVE_WORDS = ("bad", "terrible", "awful", "hate", "frustrated", "disappointed", "broken")

URGENCY_RULES: List[Tuple[Tuple[str, ...], Urgency]] = [
    (("critical", "urgent", "emergency", "down"), Urgency.CRITICAL),
    (("important", "asap", "soon"), Urgency.HIGH),
    (("minor", "low priority", "nice to have"), Urgency.LOW),
]

STOP_WORDS = frozenset(["this", "that", "with", "from", "have", "been", "will", "would"])
MIN_KEYWORD_LENGTH = 5


class RuleClassification(NamedTuple):
    theme: str
    sentiment: str
    urgency: str
    keywords: List[str]


def _contains_any(text: str, terms) -> bool:
    return any(term in text for term in terms)


def classify_theme(content: str) -> str:
    """Return the label of the first theme rule whose terms occur in the content."""
    lower = content.lower()
    for terms, label in THEME_RULES:
        if _contains_any(lower, terms):
            return label
    return DEFAULT_THEME_LABEL


def classify_sentiment(content: str) -> str:
    """
    Compare how many positive and negative lexicon words occur in the content.

    Each lexicon word counts once, however often it appears. Equal counts,
    including zero against zero, are neutral.
    """
    lower = content.lower()
    positive_count = sum(1 for word in POSITIVE_WORDS if word in lower)
    negative_count = sum(1 for word in NEGATIVE_WORDS if word in lower)

    if negative_count > positive_count:
        return Sentiment.NEGATIVE.value
    if positive_count > negative_count:
        return Sentiment.POSITIVE.value
    return Sentiment.NEUTRAL.value


def classify_urgency(content: str) -> str:
    lower = content.lower()
    for terms, urgency in URGENCY_RULES:
        if _contains_any(lower, terms):
            return urgency.value
    return Urgency.MEDIUM.value


def extract_keywords(content: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """
    Most frequent qualifying words, highest count first.

    Words shorter than five characters and stop words are dropped. Ties keep
    the order in which the words first appear.
    """
    words = re.sub(r"[^\w\s]", " ", content.lower()).split()
    qualifying = [w for w in words if len(w) >= MIN_KEYWORD_LENGTH and w not in STOP_WORDS]

    # Counter keeps first-seen order and sorted() is stable
    counts = Counter(qualifying)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [word for word, _ in ranked[:limit]]


def classify(content: str) -> RuleClassification:
    """Classify content on every rule-based dimension at once."""
    return RuleClassification(
        theme=classify_theme(content),
        sentiment=classify_sentiment(content),
        urgency=classify_urgency(content),
        keywords=extract_keywords(content),
    )
