"""
Tests for PRREVIEW data models.
"""

from datetime import date

from src.data.data_models import (
    Customer,
    Product,
    Rating,
    Review,
    Sentiment,
    RATING_MAX,
    RATING_MIN,
)


class TestProduct:
    """Tests for Product model."""

    def test_defaults(self):
        product = Product(name="Laptop")
        assert product.average_rating is None
        assert product.product_id is None
        assert product.category is None


class TestReview:
    """Tests for Review model."""

    def test_review_date_defaults_to_today(self):
        review = Review(product_id=1, customer_id=2, rating=4)
        assert review.review_date == date.today()
        assert review.review_text is None
        assert review.review_id is None

    def test_equality_by_value(self):
        a = Review(product_id=1, customer_id=2, rating=4, review_date=date(2024, 1, 1))
        b = Review(product_id=1, customer_id=2, rating=4, review_date=date(2024, 1, 1))
        assert a == b


class TestRating:
    """Tests for Rating model."""

    def test_customer_may_be_detached(self):
        rating = Rating(product_id=1, customer_id=None, rating_value=3)
        assert rating.customer_id is None
        assert rating.rating_date == date.today()


class TestCustomer:

    def test_optional_contact(self):
        customer = Customer(name="Alice", email="alice@example.com")
        assert customer.contact_info is None


class TestConstants:

    def test_rating_bounds(self):
        assert (RATING_MIN, RATING_MAX) == (1, 5)

    def test_sentiment_is_str(self):
        assert Sentiment.NEUTRAL == "Neutral"
