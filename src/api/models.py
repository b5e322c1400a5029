"""
PRREVIEW API Models
===================

Pydantic models for API request/response serialization.
"""

from datetime import date
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class ReviewCreateRequest(BaseModel):
    """Body of POST /api/reviews."""
    product_id: int
    customer_id: int
    rating: int = Field(description="Integer star rating, 1 to 5")
    review_text: Optional[str] = None
    review_date: Optional[date] = None


class ReviewUpdateRequest(BaseModel):
    """Body of PATCH /api/reviews/{review_id}. Only fields that are sent change."""
    product_id: Optional[int] = None
    rating: Optional[int] = None
    review_text: Optional[str] = None
    review_date: Optional[date] = None


class RatingCreateRequest(BaseModel):
    product_id: int
    customer_id: int
    rating_value: int = Field(description="Integer star rating, 1 to 5")
    rating_date: Optional[date] = None


class ReviewModel(BaseModel):
    review_id: int
    product_id: int
    customer_id: int
    rating: int
    review_text: Optional[str] = None
    review_date: date


class ReviewMutationResponse(BaseModel):
    """A review plus the average_rating of every product the mutation touched."""
    review: ReviewModel
    average_ratings: Dict[int, Optional[Decimal]]


class RatingModel(BaseModel):
    rating_id: int
    product_id: int
    customer_id: Optional[int] = None
    rating_value: int
    rating_date: date


class CustomerCascadeResponse(BaseModel):
    customer_id: int
    reviews_deleted: int
    ratings_detached: int
    products_affected: List[int]
    average_ratings: Dict[int, Optional[Decimal]]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    backend: Optional[str] = None
    store: str
    store_version: Optional[str] = None
