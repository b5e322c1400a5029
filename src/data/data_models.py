"""
PRREVIEW Data Models
====================

Dataclasses for the records held by the fact store. These are the
intermediate representation between the store adapters (PostgreSQL rows,
in-process dicts) and the aggregation engine.

Models:
    - Customer: review author, owns Reviews and Ratings by reference
    - Product: catalogue item carrying the derived average_rating
    - Review: rated free-text review, drives Product.average_rating
    - Rating: bare star rating, feeds only the top-rated report
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional


RATING_MIN = 1
RATING_MAX = 5


class Sentiment(str, Enum):
    """Coarse sentiment bucket of a review text."""
    POSITIVE = "Positive"
    NEGATIVE = "Negative"
    NEUTRAL = "Neutral"


@dataclass
class Customer:
    """Review author."""
    name: str
    email: str
    contact_info: Optional[str] = None
    customer_id: Optional[int] = None


@dataclass
class Product:
    """
    Catalogue product.

    average_rating is derived from the product's Reviews and is only ever
    written by the AggregateMaintainer. NULL (None) when no Reviews exist.
    """
    name: str
    category: Optional[str] = None
    price: Optional[Decimal] = None
    description: Optional[str] = None
    average_rating: Optional[Decimal] = None
    product_id: Optional[int] = None


@dataclass
class Review:
    """Customer review of a product. rating is an integer in [1, 5]."""
    product_id: int
    customer_id: int
    rating: int
    review_text: Optional[str] = None
    review_date: date = field(default_factory=date.today)
    review_id: Optional[int] = None


@dataclass
class Rating:
    """
    Bare star rating.

    customer_id becomes None once the owning customer is deleted; the
    rating itself is kept so the top-rated report does not shift.
    """
    product_id: int
    customer_id: Optional[int]
    rating_value: int
    rating_date: date = field(default_factory=date.today)
    rating_id: Optional[int] = None
