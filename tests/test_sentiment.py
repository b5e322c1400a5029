"""
Tests for the deterministic sentiment classifier.

Usage:
    pytest tests/test_sentiment.py -v
"""

import pytest

from src.data.data_models import Sentiment
from src.reviews.sentiment import classify, SENTIMENT_KEYWORDS


class TestClassify:
    """Tests for classify()."""

    def test_good_is_positive(self):
        assert classify("Great phone with good battery life.") == Sentiment.POSITIVE

    def test_bad_is_negative(self):
        assert classify("bad") == Sentiment.NEGATIVE

    def test_no_keyword_is_neutral(self):
        assert classify("It broke quickly") == Sentiment.NEUTRAL

    def test_good_checked_before_bad(self):
        """Priority order, not occurrence count or position."""
        assert classify("This is a good and bad item") == Sentiment.POSITIVE
        assert classify("bad bad bad, only one good thing") == Sentiment.POSITIVE

    def test_case_sensitive(self):
        assert classify("GOOD value") == Sentiment.NEUTRAL
        assert classify("Bad fit") == Sentiment.NEUTRAL

    def test_substring_match(self):
        """'goodness' and 'badge' still contain the keywords."""
        assert classify("oh my goodness") == Sentiment.POSITIVE
        assert classify("came with a badge") == Sentiment.NEGATIVE

    @pytest.mark.parametrize("text", ["", None])
    def test_empty_or_missing_text_is_neutral(self, text):
        assert classify(text) == Sentiment.NEUTRAL

    def test_deterministic(self):
        text = "Excellent product, highly recommend!"
        assert len({classify(text) for _ in range(20)}) == 1

    def test_keyword_order(self):
        assert [keyword for keyword, _ in SENTIMENT_KEYWORDS] == ["good", "bad"]

    def test_sentiment_values_match_report_labels(self):
        assert [s.value for s in Sentiment] == ["Positive", "Negative", "Neutral"]
