"""
Aggregate Maintainer
====================

Keeps Product.average_rating equal to the rounded mean of the product's live
Review ratings (None when it has none), and cascades Review deletion when a
Customer goes away.

The review hooks run inside a product_scope() session opened by the caller,
so the write that triggered them and the recomputed aggregate commit together.
The customer cascade opens its own scopes, one product at a time.

Usage:
    maintainer = AggregateMaintainer(store)
    with store.product_scope([review.product_id], timeout=5.0) as session:
        review = session.create_review(review)
        maintainer.on_review_created(session, review)
"""

import logging
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Sequence, Tuple

from ..data.data_models import Review
from ..data.errors import IntegrityFault
from ..data.fact_store import FactSession, FactStore

logger = logging.getLogger(__name__)

AVERAGE_QUANTUM = Decimal("0.01")


def mean_rating(ratings: Sequence[int]) -> Optional[Decimal]:
    """Arithmetic mean rounded half-up to 2 places, or None for no ratings."""
    if not ratings:
        return None
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    return mean.quantize(AVERAGE_QUANTUM, rounding=ROUND_HALF_UP)


class AggregateMaintainer:
    """
    Event hooks for the Review lifecycle and Customer deletion.

    Recomputation is a full scan of the product's reviews on every event.
    """

    def __init__(self, store: FactStore, lock_timeout: Optional[float] = None):
        """
        Args:
            store: Fact store the cascade and rebuild open their own scopes on
            lock_timeout: Bounded wait per product lock (settings if None)
        """
        if lock_timeout is None:
            from ..data.config import get_settings
            lock_timeout = get_settings().aggregation.lock_timeout_seconds
        self.store = store
        self.lock_timeout = lock_timeout

    # =========================================================================
    # Recompute
    # =========================================================================

    def recompute(self, session: FactSession, product_id: int) -> Optional[Decimal]:
        """
        Recompute and persist average_rating for one product.

        Raises:
            IntegrityFault: the product does not exist
        """
        product = session.get_product(product_id)
        if product is None:
            logger.error(
                f"Integrity fault: product {product_id} missing during recompute",
                extra={"product_id": product_id, "event": "recompute"},
            )
            raise IntegrityFault(f"Product {product_id} missing during average_rating recompute")

        ratings = [review.rating for review in session.get_reviews_by_product(product_id)]
        value = mean_rating(ratings)
        session.write_product_aggregate(product_id, value)

        logger.info(
            f"average_rating[{product_id}] = {value} over {len(ratings)} reviews",
            extra={"product_id": product_id, "event": "recompute"},
        )
        return value

    # =========================================================================
    # Review hooks (caller holds the product scope)
    # =========================================================================

    def on_review_created(self, session: FactSession, review: Review) -> Optional[Decimal]:
        return self.recompute(session, review.product_id)

    def on_review_updated(
        self,
        session: FactSession,
        review: Review,
        previous: Optional[Review] = None,
    ) -> Dict[int, Optional[Decimal]]:
        """
        Recompute the review's product, and the product it left if it moved.

        The caller's scope must cover both product ids.
        """
        affected = {review.product_id}
        if previous is not None and previous.product_id != review.product_id:
            affected.add(previous.product_id)
        return {product_id: self.recompute(session, product_id) for product_id in sorted(affected)}

    def on_review_deleted(self, session: FactSession, review: Review) -> Optional[Decimal]:
        return self.recompute(session, review.product_id)

    # =========================================================================
    # Customer cascade
    # =========================================================================

    def on_customer_deleted(self, customer_id: int) -> Tuple[int, Dict[int, Optional[Decimal]]]:
        """
        Delete every review written by customer_id and recompute each
        affected product. Each product is locked, updated and committed on
        its own; there is no global lock.

        Returns:
            (reviews deleted, {product_id: new average_rating})
        """
        with self.store.session() as session:
            pending = session.get_reviews_by_customer(customer_id)

        deleted = 0
        aggregates: Dict[int, Optional[Decimal]] = {}
        for product_id in sorted({review.product_id for review in pending}):
            with self.store.product_scope([product_id], self.lock_timeout) as session:
                # Re-read under the lock; the snapshot above may be stale
                doomed = [
                    review for review in session.get_reviews_by_product(product_id)
                    if review.customer_id == customer_id
                ]
                for review in doomed:
                    session.delete_review(review.review_id)
                aggregates[product_id] = self.recompute(session, product_id)
            deleted += len(doomed)
            logger.info(
                f"Cascade: removed {len(doomed)} reviews of customer {customer_id} on product {product_id}",
                extra={"customer_id": customer_id, "product_id": product_id, "event": "customer_cascade"},
            )

        return deleted, aggregates

    # =========================================================================
    # Maintenance
    # =========================================================================

    def rebuild_all(self) -> int:
        """
        Recompute every product's aggregate under its own scope.

        Returns:
            Number of products whose stored value was wrong
        """
        start = time.monotonic()
        with self.store.session() as session:
            product_ids = [product.product_id for product in session.list_products()]

        repaired = 0
        for product_id in product_ids:
            with self.store.product_scope([product_id], self.lock_timeout) as session:
                before = session.get_product(product_id).average_rating
                after = self.recompute(session, product_id)
            if before != after:
                repaired += 1
                logger.warning(
                    f"Repaired average_rating[{product_id}]: {before} -> {after}",
                    extra={"product_id": product_id, "event": "rebuild"},
                )

        logger.info(
            f"Rebuild complete: {len(product_ids)} products, {repaired} repaired",
            extra={"event": "rebuild", "duration": round(time.monotonic() - start, 3)},
        )
        return repaired
