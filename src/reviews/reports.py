"""
Review Report Generator
=======================

Read-only queries over the fact store. Each report reads one store session,
so it reflects committed state only.

Reports:
    keyword_frequency  - reviews grouped by exact text, most frequent first
    top_rated_products - products ranked by mean Rating.rating_value (max 10)
    sentiment_report   - Positive/Negative/Neutral counts per product
    score_reviews      - sentiment of every individual review
    product_reviews    - reviews joined with product and customer names

Usage:
    reports = ReportGenerator(store)
    for row in reports.sentiment_report():
        print(row.product_id, row.as_dict())
"""

import logging
from collections import Counter, defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from ..data.errors import ValidationError
from ..data.fact_store import FactStore
from .review_models import (
    KeywordFrequency,
    ProductReviewRow,
    ReviewSentiment,
    SentimentCounts,
    TopRatedProduct,
)
from .sentiment import classify

logger = logging.getLogger(__name__)

TOP_RATED_QUANTUM = Decimal("0.0001")
TOP_RATED_MAX = 10


class ReportGenerator:
    """Aggregations over stored Reviews and Ratings."""

    def __init__(self, store: FactStore, top_rated_limit: Optional[int] = None):
        if top_rated_limit is None:
            from ..data.config import get_settings
            top_rated_limit = get_settings().aggregation.top_rated_limit
        self.store = store
        self.top_rated_limit = top_rated_limit

    def keyword_frequency(self) -> List[KeywordFrequency]:
        """
        Count reviews per distinct review_text (whole-text equality, not words).

        Ordered by frequency descending, then text ascending with missing
        text first.
        """
        with self.store.session() as session:
            counts = Counter(review.review_text for review in session.list_reviews())

        rows = [KeywordFrequency(review_text=text, frequency=n) for text, n in counts.items()]
        rows.sort(key=lambda row: (-row.frequency, row.review_text is not None, row.review_text or ""))
        return rows

    def top_rated_products(self, limit: Optional[int] = None) -> List[TopRatedProduct]:
        """
        Rank products by mean rating_value over their Ratings.

        Ties keep ascending product_id order. Never more than 10 rows;
        a limit above 10 is capped, a limit below 1 is a ValidationError.
        """
        if limit is None:
            limit = self.top_rated_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError(f"limit must be a positive integer, got: {limit!r}", field="limit")
        limit = min(limit, TOP_RATED_MAX)

        totals: Dict[int, List[int]] = defaultdict(lambda: [0, 0])
        with self.store.session() as session:
            for rating in session.list_ratings():
                bucket = totals[rating.product_id]
                bucket[0] += rating.rating_value
                bucket[1] += 1

        # Order on the exact mean, report the rounded one
        ranked = sorted(
            totals.items(),
            key=lambda item: (-(Decimal(item[1][0]) / Decimal(item[1][1])), item[0]),
        )
        return [
            TopRatedProduct(
                product_id=product_id,
                average_rating=(Decimal(total) / Decimal(count)).quantize(TOP_RATED_QUANTUM, rounding=ROUND_HALF_UP),
                rating_count=count,
            )
            for product_id, (total, count) in ranked[:limit]
        ]

    def sentiment_report(self) -> List[SentimentCounts]:
        """Per-product sentiment counts. Products without reviews are absent."""
        by_product: Dict[int, SentimentCounts] = {}
        with self.store.session() as session:
            reviews = session.list_reviews()

        for review in reviews:
            counts = by_product.get(review.product_id)
            if counts is None:
                counts = by_product[review.product_id] = SentimentCounts(product_id=review.product_id)
            counts.add(classify(review.review_text))

        logger.debug(f"Sentiment report over {len(reviews)} reviews, {len(by_product)} products")
        return [by_product[product_id] for product_id in sorted(by_product)]

    def score_reviews(self) -> List[ReviewSentiment]:
        with self.store.session() as session:
            reviews = session.list_reviews()
        return [
            ReviewSentiment(
                review_id=review.review_id,
                product_id=review.product_id,
                customer_id=review.customer_id,
                sentiment=classify(review.review_text),
            )
            for review in sorted(reviews, key=lambda r: r.review_id)
        ]

    def product_reviews(self, product_id: Optional[int] = None) -> List[ProductReviewRow]:
        """Reviews with product and customer names, optionally for one product."""
        with self.store.session() as session:
            products = {p.product_id: p for p in session.list_products()}
            customers = {c.customer_id: c for c in session.list_customers()}
            reviews = session.list_reviews()

        rows = []
        for review in reviews:
            if product_id is not None and review.product_id != product_id:
                continue
            product = products.get(review.product_id)
            customer = customers.get(review.customer_id)
            # Inner join: a row needs both sides
            if product is None or customer is None:
                continue
            rows.append(ProductReviewRow(
                product_id=product.product_id,
                product_name=product.name,
                customer_id=customer.customer_id,
                customer_name=customer.name,
                review_text=review.review_text,
                rating=review.rating,
                review_date=review.review_date,
            ))
        return rows
