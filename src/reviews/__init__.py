"""
PRREVIEW Review Engine
======================

Consistency-maintaining aggregation over product reviews.

Modules:
    sentiment     - Deterministic keyword sentiment classifier
    aggregates    - AggregateMaintainer: average_rating hooks and customer cascade
    service       - ReviewService: validated mutation entry points
    reports       - ReportGenerator: keyword, top-rated and sentiment reports
    review_models - Result models (ReviewMutation, SentimentCounts, ...)
"""

from .sentiment import classify
from .aggregates import AggregateMaintainer, mean_rating
from .service import ReviewService, validate_rating
from .reports import ReportGenerator
from .review_models import (
    CustomerCascade,
    KeywordFrequency,
    ProductReviewRow,
    ReviewMutation,
    ReviewSentiment,
    SentimentCounts,
    TopRatedProduct,
)
