"""
Review Engine Result Models
===========================

Structured outputs of the mutation path and the report queries.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from ..data.data_models import Review, Sentiment


@dataclass
class ReviewMutation:
    """Outcome of a review create/update/delete: the review and every aggregate it moved."""
    review: Review
    aggregates: Dict[int, Optional[Decimal]]

    def average_for(self, product_id: int) -> Optional[Decimal]:
        return self.aggregates.get(product_id)


@dataclass
class CustomerCascade:
    """Outcome of a customer removal."""
    customer_id: int
    reviews_deleted: int = 0
    ratings_detached: int = 0
    passes: int = 0
    aggregates: Dict[int, Optional[Decimal]] = field(default_factory=dict)

    @property
    def products_affected(self) -> List[int]:
        return sorted(self.aggregates)


@dataclass
class KeywordFrequency:
    """One distinct review text and how many reviews carry it verbatim."""
    review_text: Optional[str]
    frequency: int


@dataclass
class TopRatedProduct:
    product_id: int
    average_rating: Decimal     # mean rating_value, 4 fractional digits
    rating_count: int


@dataclass
class ReviewSentiment:
    review_id: int
    product_id: int
    customer_id: int
    sentiment: Sentiment


@dataclass
class SentimentCounts:
    """Per-product sentiment tally."""
    product_id: int
    positive_reviews: int = 0
    negative_reviews: int = 0
    neutral_reviews: int = 0

    def add(self, sentiment: Sentiment) -> None:
        if sentiment == Sentiment.POSITIVE:
            self.positive_reviews += 1
        elif sentiment == Sentiment.NEGATIVE:
            self.negative_reviews += 1
        else:
            self.neutral_reviews += 1

    @property
    def total(self) -> int:
        return self.positive_reviews + self.negative_reviews + self.neutral_reviews

    def as_dict(self) -> Dict[str, int]:
        return {
            Sentiment.POSITIVE.value: self.positive_reviews,
            Sentiment.NEGATIVE.value: self.negative_reviews,
            Sentiment.NEUTRAL.value: self.neutral_reviews,
        }


@dataclass
class ProductReviewRow:
    """A review joined with its product and customer names."""
    product_id: int
    product_name: str
    customer_id: int
    customer_name: str
    review_text: Optional[str]
    rating: int
    review_date: date
