"""
Sentiment Classifier (Deterministic)
====================================

Keyword placeholder classifier: case-sensitive substring test with a fixed
priority order. "good" wins over "bad" when a text contains both.

Usage:
    classify("good value")        # Sentiment.POSITIVE
    classify("bad battery")       # Sentiment.NEGATIVE
    classify("It broke quickly")  # Sentiment.NEUTRAL
"""

from typing import List, Optional, Tuple

from ..data.data_models import Sentiment

# Checked in order; first hit wins.
SENTIMENT_KEYWORDS: List[Tuple[str, Sentiment]] = [
    ("good", Sentiment.POSITIVE),
    ("bad", Sentiment.NEGATIVE),
]


def classify(text: Optional[str]) -> Sentiment:
    """Classify review text. Missing text is Neutral."""
    if text:
        for keyword, sentiment in SENTIMENT_KEYWORDS:
            if keyword in text:
                return sentiment
    return Sentiment.NEUTRAL
