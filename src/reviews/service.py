"""
Review Service
==============

Mutation entry points. Each call validates its input, opens a product scope
on the fact store, performs the write and runs the matching AggregateMaintainer
hook inside the same scope, so a review never commits without its aggregate.

Usage:
    service = ReviewService(store)
    result = service.submit_review(product_id=1, customer_id=7, rating=5, review_text="good")
    result.average_for(1)        # Decimal("5.00")

    service.remove_customer(7)   # cascades reviews, detaches ratings
"""

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Optional

from ..data.data_models import Rating, Review, RATING_MAX, RATING_MIN
from ..data.errors import ContentionTimeout, ReferenceNotFound, ValidationError
from ..data.fact_store import FactStore
from .aggregates import AggregateMaintainer
from .review_models import CustomerCascade, ReviewMutation

logger = logging.getLogger(__name__)

EDITABLE_REVIEW_FIELDS = ("product_id", "rating", "review_text", "review_date")


def validate_rating(value: Any, field: str = "rating") -> int:
    """Accept an integer in [1, 5]; anything else is a ValidationError."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer, got: {value!r}", field=field)
    if not RATING_MIN <= value <= RATING_MAX:
        raise ValidationError(
            f"{field} must be between {RATING_MIN} and {RATING_MAX}, got: {value}", field=field,
        )
    return value


def require_id(value: Any, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer, got: {value!r}", field=field)
    return value


class ReviewService:
    """
    submit_review / edit_review / remove_review / remove_customer / submit_rating.

    Validation errors are raised before the store is touched. Lock waits are
    bounded; ContentionTimeout is the caller's cue to resubmit.
    """

    def __init__(
        self,
        store: FactStore,
        maintainer: Optional[AggregateMaintainer] = None,
        lock_timeout: Optional[float] = None,
        max_passes: Optional[int] = None,
    ):
        if lock_timeout is None or max_passes is None:
            from ..data.config import get_settings
            aggregation = get_settings().aggregation
            lock_timeout = aggregation.lock_timeout_seconds if lock_timeout is None else lock_timeout
            max_passes = aggregation.cascade_max_passes if max_passes is None else max_passes

        self.store = store
        self.lock_timeout = lock_timeout
        self.max_passes = max_passes
        self.maintainer = maintainer or AggregateMaintainer(store, lock_timeout=lock_timeout)

    # =========================================================================
    # Reviews
    # =========================================================================

    def submit_review(
        self,
        product_id: int,
        customer_id: int,
        rating: int,
        review_text: Optional[str] = None,
        review_date: Optional[date] = None,
    ) -> ReviewMutation:
        require_id(product_id, "product_id")
        require_id(customer_id, "customer_id")
        validate_rating(rating)

        review = Review(
            product_id=product_id,
            customer_id=customer_id,
            rating=rating,
            review_text=review_text,
            review_date=review_date or date.today(),
        )

        with self.store.product_scope([product_id], self.lock_timeout) as session:
            if session.get_product(product_id) is None:
                raise ReferenceNotFound("Product", product_id)
            if session.get_customer(customer_id) is None:
                raise ReferenceNotFound("Customer", customer_id)
            review = session.create_review(review)
            average = self.maintainer.on_review_created(session, review)

        logger.info(
            f"Review {review.review_id} submitted for product {product_id} (rating={rating})",
            extra={"review_id": review.review_id, "product_id": product_id, "event": "review_created"},
        )
        return ReviewMutation(review=review, aggregates={product_id: average})

    def edit_review(self, review_id: int, **changes) -> ReviewMutation:
        """
        Apply field changes to a review. Moving it to another product
        recomputes both the old and the new product.
        """
        unknown = sorted(set(changes) - set(EDITABLE_REVIEW_FIELDS))
        if unknown:
            raise ValidationError(f"Cannot edit review field(s): {', '.join(unknown)}", field=unknown[0])
        if "rating" in changes:
            validate_rating(changes["rating"])
        if "product_id" in changes:
            require_id(changes["product_id"], "product_id")
        if changes.get("review_date", date.today()) is None:
            raise ValidationError("review_date cannot be cleared", field="review_date")

        for attempt in range(1, self.max_passes + 1):
            current = self._load_review(review_id)
            scope = {current.product_id, changes.get("product_id", current.product_id)}

            with self.store.product_scope(scope, self.lock_timeout) as session:
                previous = session.get_review(review_id)
                if previous is None:
                    raise ReferenceNotFound("Review", review_id)
                if previous.product_id in scope:
                    target = changes.get("product_id", previous.product_id)
                    if target != previous.product_id and session.get_product(target) is None:
                        raise ReferenceNotFound("Product", target)
                    updated = session.update_review(replace(previous, **changes))
                    aggregates = self.maintainer.on_review_updated(session, updated, previous)
                    logger.info(
                        f"Review {review_id} updated; recomputed products {sorted(aggregates)}",
                        extra={"review_id": review_id, "event": "review_updated"},
                    )
                    return ReviewMutation(review=updated, aggregates=aggregates)

            logger.warning(
                f"Review {review_id} moved while waiting for its product lock (attempt {attempt})",
                extra={"review_id": review_id},
            )

        raise ContentionTimeout(scope, self.lock_timeout, reason=f"Review {review_id} kept moving between products")

    def remove_review(self, review_id: int) -> ReviewMutation:
        for attempt in range(1, self.max_passes + 1):
            current = self._load_review(review_id)

            with self.store.product_scope([current.product_id], self.lock_timeout) as session:
                review = session.get_review(review_id)
                if review is None:
                    raise ReferenceNotFound("Review", review_id)
                if review.product_id == current.product_id:
                    session.delete_review(review_id)
                    average = self.maintainer.on_review_deleted(session, review)
                    logger.info(
                        f"Review {review_id} removed from product {review.product_id}",
                        extra={"review_id": review_id, "product_id": review.product_id, "event": "review_deleted"},
                    )
                    return ReviewMutation(review=review, aggregates={review.product_id: average})

            logger.warning(
                f"Review {review_id} moved while waiting for its product lock (attempt {attempt})",
                extra={"review_id": review_id},
            )

        raise ContentionTimeout(
            [current.product_id], self.lock_timeout,
            reason=f"Review {review_id} kept moving between products",
        )

    def _load_review(self, review_id: int) -> Review:
        require_id(review_id, "review_id")
        with self.store.session() as session:
            review = session.get_review(review_id)
        if review is None:
            raise ReferenceNotFound("Review", review_id)
        return review

    # =========================================================================
    # Customers
    # =========================================================================

    def remove_customer(self, customer_id: int) -> CustomerCascade:
        """
        Two-phase customer removal.

        Phase 1 deletes the customer's reviews product by product (each
        product locked and recomputed on its own). Phase 2 checks nothing new
        slipped in, detaches the customer's ratings and deletes the customer.
        A failure part-way leaves every finished product consistent and the
        customer in place, so the call can simply be repeated.
        """
        require_id(customer_id, "customer_id")
        with self.store.session() as session:
            if session.get_customer(customer_id) is None:
                raise ReferenceNotFound("Customer", customer_id)

        result = CustomerCascade(customer_id=customer_id)
        for attempt in range(1, self.max_passes + 1):
            result.passes = attempt
            deleted, aggregates = self.maintainer.on_customer_deleted(customer_id)
            result.reviews_deleted += deleted
            result.aggregates.update(aggregates)

            try:
                with self.store.session() as session:
                    if session.get_reviews_by_customer(customer_id):
                        logger.warning(
                            f"Customer {customer_id} gained reviews during cascade (pass {attempt})",
                            extra={"customer_id": customer_id},
                        )
                        continue
                    result.ratings_detached = session.detach_customer_ratings(customer_id)
                    session.delete_customer(customer_id)
            except ContentionTimeout as e:
                logger.warning(f"Customer {customer_id} delete deferred: {e.message}", extra={"customer_id": customer_id})
                continue

            logger.info(
                f"Customer {customer_id} removed: {result.reviews_deleted} reviews deleted, "
                f"{result.ratings_detached} ratings detached, products {result.products_affected}",
                extra={"customer_id": customer_id, "event": "customer_deleted"},
            )
            return result

        raise ContentionTimeout(
            result.products_affected, self.lock_timeout,
            reason=f"Customer {customer_id} still had dependents after {self.max_passes} passes",
        )

    # =========================================================================
    # Ratings
    # =========================================================================

    def submit_rating(
        self,
        product_id: int,
        customer_id: int,
        rating_value: int,
        rating_date: Optional[date] = None,
    ) -> Rating:
        """Record a bare rating. Ratings feed the top-rated report, not average_rating."""
        require_id(product_id, "product_id")
        require_id(customer_id, "customer_id")
        validate_rating(rating_value, field="rating_value")

        with self.store.session() as session:
            if session.get_product(product_id) is None:
                raise ReferenceNotFound("Product", product_id)
            if session.get_customer(customer_id) is None:
                raise ReferenceNotFound("Customer", customer_id)
            rating = session.create_rating(Rating(
                product_id=product_id,
                customer_id=customer_id,
                rating_value=rating_value,
                rating_date=rating_date or date.today(),
            ))

        logger.debug(f"Rating {rating.rating_id} recorded for product {product_id}")
        return rating

    # =========================================================================
    # Maintenance
    # =========================================================================

    def rebuild_aggregates(self) -> int:
        return self.maintainer.rebuild_all()
