"""
Tests for the ReviewService mutation path.

Covers validation before writes, reference checks, product moves,
customer removal, contention timeouts and rollback of failed hooks.

Usage:
    pytest tests/test_review_service.py -v
"""

import threading
from contextlib import contextmanager
from datetime import date
from decimal import Decimal

import pytest

from src.data.data_models import Customer, Product, Review
from src.data.errors import (
    ContentionTimeout,
    IntegrityFault,
    ReferenceNotFound,
    ValidationError,
)
from src.data.memory_store import MemoryFactStore
from src.reviews.aggregates import AggregateMaintainer
from src.reviews.reports import ReportGenerator
from src.reviews.service import ReviewService, validate_rating


# ============================================================================
# HELPERS
# ============================================================================

def seed_store(products: int = 3, customers: int = 3) -> MemoryFactStore:
    store = MemoryFactStore()
    with store.session() as session:
        for i in range(1, products + 1):
            session.create_product(Product(name=f"Product {i}"))
        for i in range(1, customers + 1):
            session.create_customer(Customer(name=f"Customer {i}", email=f"customer{i}@example.com"))
    return store


def average(store, product_id):
    with store.session() as session:
        return session.get_product(product_id).average_rating


def review_count(store):
    with store.session() as session:
        return len(session.list_reviews())


class FailingMaintainer(AggregateMaintainer):
    """Hook that blows up after the review write has been staged."""

    def on_review_created(self, session, review):
        raise IntegrityFault("boom")


# ============================================================================
# VALIDATION
# ============================================================================

class TestValidateRating:

    @pytest.mark.parametrize("value", [1, 3, 5])
    def test_accepts_range(self, value):
        assert validate_rating(value) == value

    @pytest.mark.parametrize("value", [0, 6, -1, 100])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(ValidationError):
            validate_rating(value)

    @pytest.mark.parametrize("value", [3.5, "5", None, True])
    def test_rejects_non_integers(self, value):
        with pytest.raises(ValidationError):
            validate_rating(value)

    def test_field_name_reported(self):
        with pytest.raises(ValidationError) as exc:
            validate_rating(9, field="rating_value")
        assert exc.value.field == "rating_value"


# ============================================================================
# SUBMIT / EDIT / REMOVE
# ============================================================================

class TestReviewMutations:

    def setup_method(self):
        self.store = seed_store()
        self.service = ReviewService(self.store, lock_timeout=1.0, max_passes=3)

    def test_submit_returns_new_average(self):
        result = self.service.submit_review(1, 1, 5, "good")
        assert result.review.review_id is not None
        assert result.average_for(1) == Decimal("5.00")

        result = self.service.submit_review(1, 2, 3, "ok")
        assert result.average_for(1) == Decimal("4.00")
        assert average(self.store, 1) == Decimal("4.00")

    def test_submit_defaults_review_date(self):
        result = self.service.submit_review(1, 1, 4)
        assert result.review.review_date == date.today()

    @pytest.mark.parametrize("rating", [0, 6, 2.5, None])
    def test_invalid_rating_leaves_no_trace(self, rating):
        with pytest.raises(ValidationError):
            self.service.submit_review(1, 1, rating)
        assert review_count(self.store) == 0
        assert average(self.store, 1) is None

    def test_missing_reference_id(self):
        with pytest.raises(ValidationError):
            self.service.submit_review(None, 1, 3)

    def test_unknown_product(self):
        with pytest.raises(ReferenceNotFound) as exc:
            self.service.submit_review(42, 1, 3)
        assert exc.value.entity == "Product"
        assert review_count(self.store) == 0

    def test_unknown_customer(self):
        with pytest.raises(ReferenceNotFound) as exc:
            self.service.submit_review(1, 42, 3)
        assert exc.value.entity == "Customer"

    def test_reference_not_found_is_validation_error(self):
        with pytest.raises(ValidationError):
            self.service.submit_review(1, 42, 3)

    def test_edit_rating(self):
        review = self.service.submit_review(1, 1, 1).review
        result = self.service.edit_review(review.review_id, rating=5)
        assert result.review.rating == 5
        assert result.aggregates == {1: Decimal("5.00")}

    def test_edit_text_keeps_average(self):
        review = self.service.submit_review(1, 1, 2, "bad").review
        result = self.service.edit_review(review.review_id, review_text="good after all")
        assert result.review.review_text == "good after all"
        assert average(self.store, 1) == Decimal("2.00")

    def test_edit_move_recomputes_old_and_new_product(self):
        self.service.submit_review(1, 1, 5)
        moving = self.service.submit_review(1, 2, 1).review

        result = self.service.edit_review(moving.review_id, product_id=2)

        assert result.aggregates == {1: Decimal("5.00"), 2: Decimal("1.00")}
        assert average(self.store, 1) == Decimal("5.00")
        assert average(self.store, 2) == Decimal("1.00")

    def test_edit_move_leaves_old_product_null(self):
        moving = self.service.submit_review(1, 1, 4).review
        self.service.edit_review(moving.review_id, product_id=3, rating=2)
        assert average(self.store, 1) is None
        assert average(self.store, 3) == Decimal("2.00")

    def test_edit_invalid_rating(self):
        review = self.service.submit_review(1, 1, 3).review
        with pytest.raises(ValidationError):
            self.service.edit_review(review.review_id, rating=7)
        assert average(self.store, 1) == Decimal("3.00")

    def test_edit_unknown_field(self):
        review = self.service.submit_review(1, 1, 3).review
        with pytest.raises(ValidationError):
            self.service.edit_review(review.review_id, customer_id=2)

    def test_edit_to_unknown_product(self):
        review = self.service.submit_review(1, 1, 3).review
        with pytest.raises(ReferenceNotFound):
            self.service.edit_review(review.review_id, product_id=77)
        with self.store.session() as session:
            assert session.get_review(review.review_id).product_id == 1

    def test_edit_unknown_review(self):
        with pytest.raises(ReferenceNotFound):
            self.service.edit_review(999, rating=3)

    def test_remove_review(self):
        self.service.submit_review(1, 1, 5)
        three = self.service.submit_review(1, 2, 3).review

        result = self.service.remove_review(three.review_id)

        assert result.review.review_id == three.review_id
        assert result.average_for(1) == Decimal("5.00")

    def test_remove_last_review_nulls_average(self):
        review = self.service.submit_review(2, 1, 4).review
        assert self.service.remove_review(review.review_id).average_for(2) is None
        assert average(self.store, 2) is None

    def test_remove_unknown_review(self):
        with pytest.raises(ReferenceNotFound):
            self.service.remove_review(12345)


# ============================================================================
# CUSTOMER REMOVAL
# ============================================================================

class TestRemoveCustomer:

    def setup_method(self):
        self.store = seed_store()
        self.service = ReviewService(self.store, lock_timeout=1.0, max_passes=3)

    def test_removes_reviews_and_updates_every_product(self):
        self.service.submit_review(1, 1, 1, "bad")
        self.service.submit_review(1, 1, 2, "bad")
        self.service.submit_review(2, 1, 1, "bad")
        self.service.submit_review(1, 2, 4, "good")
        self.service.submit_review(2, 3, 5, "good")

        result = self.service.remove_customer(1)

        assert result.reviews_deleted == 3
        assert result.products_affected == [1, 2]
        assert result.passes == 1
        assert average(self.store, 1) == Decimal("4.00")
        assert average(self.store, 2) == Decimal("5.00")
        with self.store.session() as session:
            assert session.get_customer(1) is None
            assert session.get_reviews_by_customer(1) == []
            assert len(session.list_reviews()) == 2

    def test_ratings_are_detached_not_deleted(self):
        self.service.submit_rating(1, 1, 5)
        self.service.submit_rating(1, 2, 3)
        before = ReportGenerator(self.store, top_rated_limit=10).top_rated_products()

        result = self.service.remove_customer(1)

        assert result.ratings_detached == 1
        with self.store.session() as session:
            assert [r.customer_id for r in session.list_ratings()] == [None, 2]
        assert ReportGenerator(self.store, top_rated_limit=10).top_rated_products() == before

    def test_customer_without_reviews(self):
        result = self.service.remove_customer(3)
        assert result.reviews_deleted == 0
        assert result.aggregates == {}

    def test_unknown_customer(self):
        with pytest.raises(ReferenceNotFound):
            self.service.remove_customer(404)

    def test_removed_customer_cannot_review(self):
        self.service.remove_customer(2)
        with pytest.raises(ReferenceNotFound):
            self.service.submit_review(1, 2, 5)


# ============================================================================
# RATINGS
# ============================================================================

class TestSubmitRating:

    def setup_method(self):
        self.store = seed_store()
        self.service = ReviewService(self.store, lock_timeout=1.0, max_passes=3)

    def test_rating_does_not_touch_average(self):
        rating = self.service.submit_rating(1, 1, 5)
        assert rating.rating_id is not None
        assert average(self.store, 1) is None

    def test_rating_out_of_range(self):
        with pytest.raises(ValidationError) as exc:
            self.service.submit_rating(1, 1, 0)
        assert exc.value.field == "rating_value"

    def test_rating_unknown_product(self):
        with pytest.raises(ReferenceNotFound):
            self.service.submit_rating(9, 1, 4)


# ============================================================================
# ATOMICITY AND CONTENTION
# ============================================================================

class TestAtomicityAndContention:

    def setup_method(self):
        self.store = seed_store()

    def test_failed_hook_rolls_back_review(self):
        service = ReviewService(
            self.store,
            maintainer=FailingMaintainer(self.store, lock_timeout=1.0),
            lock_timeout=1.0,
            max_passes=1,
        )
        with pytest.raises(IntegrityFault):
            service.submit_review(1, 1, 5)
        assert review_count(self.store) == 0

    def test_busy_product_times_out_other_product_proceeds(self):
        service = ReviewService(self.store, lock_timeout=0.05, max_passes=1)

        with self.store.product_scope([1], timeout=1.0):
            with pytest.raises(ContentionTimeout) as exc:
                service.submit_review(1, 1, 5)
            assert exc.value.retryable is True
            assert exc.value.product_ids == [1]

            result = service.submit_review(2, 1, 5)
            assert result.average_for(2) == Decimal("5.00")

        assert review_count(self.store) == 1
        assert average(self.store, 1) is None

    def test_retry_after_timeout_succeeds(self):
        service = ReviewService(self.store, lock_timeout=0.05, max_passes=1)
        with self.store.product_scope([1], timeout=1.0):
            with pytest.raises(ContentionTimeout):
                service.submit_review(1, 1, 5)
        assert service.submit_review(1, 1, 5).average_for(1) == Decimal("5.00")

    def test_concurrent_submissions_keep_average_exact(self):
        service = ReviewService(self.store, lock_timeout=5.0, max_passes=3)
        ratings = [1, 2, 3, 4, 5] * 8
        errors = []

        def worker(values):
            try:
                for value in values:
                    service.submit_review(1, 1 + value % 3, value)
            except Exception as e:  # surfaced via the errors list
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(ratings[i::4],)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert review_count(self.store) == len(ratings)
        assert average(self.store, 1) == Decimal("3.00")


# ============================================================================
# MAINTENANCE
# ============================================================================

class TestRebuildAggregates:

    def test_rebuild_through_service(self):
        store = seed_store()
        service = ReviewService(store, lock_timeout=1.0, max_passes=1)
        service.submit_review(1, 1, 2)
        with store.session() as session:
            session.write_product_aggregate(1, None)
        assert service.rebuild_aggregates() == 1
        assert average(store, 1) == Decimal("2.00")


# ============================================================================
# RETRY PASSES
# ============================================================================

class ReviewArrivesDuringCascade(AggregateMaintainer):
    """A new review for the customer lands after each of the first `arrivals` sweeps."""

    def __init__(self, store, product_id, arrivals=1, **kwargs):
        super().__init__(store, **kwargs)
        self.product_id = product_id
        self.arrivals = arrivals

    def on_customer_deleted(self, customer_id):
        result = super().on_customer_deleted(customer_id)
        if self.arrivals:
            self.arrivals -= 1
            with self.store.product_scope([self.product_id], self.lock_timeout) as session:
                review = session.create_review(Review(product_id=self.product_id, customer_id=customer_id, rating=1))
                self.on_review_created(session, review)
        return result


class RefusingDeleteStore(MemoryFactStore):
    """delete_customer is refused as contended for the first `refusals` calls."""

    def __init__(self, refusals=1):
        super().__init__()
        self.refusals = refusals

    @contextmanager
    def session(self):
        with super().session() as session:
            delete_customer = session.delete_customer

            def refuse_then_delete(customer_id):
                if self.refusals:
                    self.refusals -= 1
                    raise ContentionTimeout([], reason=f"Customer {customer_id} gained dependents")
                delete_customer(customer_id)

            session.delete_customer = refuse_then_delete
            yield session


class ReviewMovedAfterRead(ReviewService):
    """Another writer moves the review to the next target right after each read."""

    def __init__(self, store, targets, **kwargs):
        super().__init__(store, **kwargs)
        self.other_writer = ReviewService(store, **kwargs)
        self.targets = list(targets)

    def _load_review(self, review_id):
        current = super()._load_review(review_id)
        if self.targets:
            self.other_writer.edit_review(review_id, product_id=self.targets.pop(0))
        return current


def seed_customer_reviews(service):
    service.submit_review(1, 1, 1, "bad")
    service.submit_review(1, 2, 5, "good")
    service.submit_review(2, 2, 3)


class TestCascadePasses:

    def test_review_arriving_mid_cascade_gets_second_pass(self):
        store = seed_store()
        seed_customer_reviews(ReviewService(store, lock_timeout=1.0, max_passes=1))
        maintainer = ReviewArrivesDuringCascade(store, product_id=2, lock_timeout=1.0)
        service = ReviewService(store, maintainer=maintainer, lock_timeout=1.0, max_passes=3)

        result = service.remove_customer(1)

        assert result.passes == 2
        assert result.reviews_deleted == 2
        assert result.products_affected == [1, 2]
        assert average(store, 1) == Decimal("5.00")
        assert average(store, 2) == Decimal("3.00")
        with store.session() as session:
            assert session.get_reviews_by_customer(1) == []
            assert session.get_customer(1) is None

    def test_pass_budget_exhausted(self):
        store = seed_store()
        seed_customer_reviews(ReviewService(store, lock_timeout=1.0, max_passes=1))
        maintainer = ReviewArrivesDuringCascade(store, product_id=2, lock_timeout=1.0)
        service = ReviewService(store, maintainer=maintainer, lock_timeout=1.0, max_passes=1)

        with pytest.raises(ContentionTimeout) as exc:
            service.remove_customer(1)

        assert exc.value.retryable
        # Finished products stay consistent and the customer is still there
        assert average(store, 1) == Decimal("5.00")
        assert average(store, 2) == Decimal("2.00")
        with store.session() as session:
            assert session.get_customer(1) is not None

        retry = ReviewService(store, lock_timeout=1.0, max_passes=1).remove_customer(1)
        assert retry.passes == 1
        assert average(store, 2) == Decimal("3.00")

    def test_refused_delete_retried(self):
        store = RefusingDeleteStore(refusals=1)
        with store.session() as session:
            session.create_product(Product(name="Widget"))
            session.create_customer(Customer(name="Alice", email="alice@example.com"))
        service = ReviewService(store, lock_timeout=1.0, max_passes=2)
        service.submit_rating(1, 1, 4)

        result = service.remove_customer(1)

        assert result.passes == 2
        assert result.ratings_detached == 1
        with store.session() as session:
            assert session.get_customer(1) is None
            assert session.list_ratings()[0].customer_id is None

    def test_refusals_outlast_budget(self):
        store = RefusingDeleteStore(refusals=5)
        with store.session() as session:
            session.create_product(Product(name="Widget"))
            session.create_customer(Customer(name="Alice", email="alice@example.com"))
        service = ReviewService(store, lock_timeout=1.0, max_passes=3)

        with pytest.raises(ContentionTimeout):
            service.remove_customer(1)
        assert store.refusals == 2
        with store.session() as session:
            assert session.get_customer(1) is not None


class TestMovedReviewRetry:

    def setup_method(self):
        self.store = seed_store()
        plain = ReviewService(self.store, lock_timeout=1.0, max_passes=1)
        self.review = plain.submit_review(1, 1, 4, "good").review

    def test_edit_follows_moved_review(self):
        service = ReviewMovedAfterRead(self.store, targets=[2], lock_timeout=1.0, max_passes=2)

        result = service.edit_review(self.review.review_id, rating=2)

        assert result.review.product_id == 2
        assert result.aggregates == {2: Decimal("2.00")}
        assert average(self.store, 1) is None
        assert average(self.store, 2) == Decimal("2.00")

    def test_remove_follows_moved_review(self):
        service = ReviewMovedAfterRead(self.store, targets=[3], lock_timeout=1.0, max_passes=2)

        result = service.remove_review(self.review.review_id)

        assert result.aggregates == {3: None}
        assert review_count(self.store) == 0
        assert average(self.store, 1) is None

    def test_edit_gives_up_when_review_keeps_moving(self):
        service = ReviewMovedAfterRead(self.store, targets=[2, 1], lock_timeout=1.0, max_passes=2)

        with pytest.raises(ContentionTimeout):
            service.edit_review(self.review.review_id, rating=1)

        with self.store.session() as session:
            review = session.get_review(self.review.review_id)
        assert (review.product_id, review.rating) == (1, 4)
        assert average(self.store, 1) == Decimal("4.00")

    def test_remove_gives_up_when_review_keeps_moving(self):
        service = ReviewMovedAfterRead(self.store, targets=[2, 3], lock_timeout=1.0, max_passes=2)

        with pytest.raises(ContentionTimeout):
            service.remove_review(self.review.review_id)
        assert review_count(self.store) == 1
