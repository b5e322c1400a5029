"""
Review Mutation API Routes
==========================

POST   /api/reviews                  - submit a review, returns the new average
PATCH  /api/reviews/{review_id}      - edit rating / text / date / product
DELETE /api/reviews/{review_id}      - remove a review
POST   /api/ratings                  - record a bare rating
DELETE /api/customers/{customer_id}  - remove a customer and cascade their reviews

Error mapping:
    ReferenceNotFound  → 404
    ValidationError    → 422
    ContentionTimeout  → 503 + Retry-After
    IntegrityFault     → 500
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..data.errors import (
    ContentionTimeout,
    IntegrityFault,
    ReferenceNotFound,
    ReviewEngineError,
    ValidationError,
)
from ..reviews.review_models import ReviewMutation
from ..reviews.service import ReviewService
from .models import (
    CustomerCascadeResponse,
    RatingCreateRequest,
    RatingModel,
    ReviewCreateRequest,
    ReviewModel,
    ReviewMutationResponse,
    ReviewUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Reviews"])

_service: Optional[ReviewService] = None


def get_review_service() -> ReviewService:
    """ReviewService over the process-wide store (lazy singleton)."""
    global _service
    if _service is None:
        from . import db
        _service = ReviewService(db.get_store())
    return _service


def reset_review_service():
    global _service
    _service = None


def _to_http(error: ReviewEngineError) -> HTTPException:
    if isinstance(error, ReferenceNotFound):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, ValidationError):
        return HTTPException(status_code=422, detail=error.message)
    if isinstance(error, ContentionTimeout):
        retry_after = str(max(1, int(error.timeout or 1)))
        return HTTPException(status_code=503, detail=error.message, headers={"Retry-After": retry_after})
    if isinstance(error, IntegrityFault):
        logger.error(f"Integrity fault surfaced to API: {error.message}")
    return HTTPException(status_code=500, detail=error.message)


def _mutation_response(result: ReviewMutation) -> ReviewMutationResponse:
    return ReviewMutationResponse(
        review=ReviewModel(**asdict(result.review)),
        average_ratings=result.aggregates,
    )


@router.post("/reviews", response_model=ReviewMutationResponse, status_code=201)
def submit_review(body: ReviewCreateRequest, service: ReviewService = Depends(get_review_service)):
    """Store a review and recompute its product's average_rating."""
    try:
        result = service.submit_review(
            product_id=body.product_id,
            customer_id=body.customer_id,
            rating=body.rating,
            review_text=body.review_text,
            review_date=body.review_date,
        )
    except ReviewEngineError as e:
        raise _to_http(e)
    return _mutation_response(result)


@router.patch("/reviews/{review_id}", response_model=ReviewMutationResponse)
def edit_review(review_id: int, body: ReviewUpdateRequest, service: ReviewService = Depends(get_review_service)):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=422, detail="No fields to update")
    try:
        result = service.edit_review(review_id, **changes)
    except ReviewEngineError as e:
        raise _to_http(e)
    return _mutation_response(result)


@router.delete("/reviews/{review_id}", response_model=ReviewMutationResponse)
def remove_review(review_id: int, service: ReviewService = Depends(get_review_service)):
    try:
        result = service.remove_review(review_id)
    except ReviewEngineError as e:
        raise _to_http(e)
    return _mutation_response(result)


@router.post("/ratings", response_model=RatingModel, status_code=201)
def submit_rating(body: RatingCreateRequest, service: ReviewService = Depends(get_review_service)):
    try:
        rating = service.submit_rating(
            product_id=body.product_id,
            customer_id=body.customer_id,
            rating_value=body.rating_value,
            rating_date=body.rating_date,
        )
    except ReviewEngineError as e:
        raise _to_http(e)
    return RatingModel(**asdict(rating))


@router.delete("/customers/{customer_id}", response_model=CustomerCascadeResponse)
def remove_customer(customer_id: int, service: ReviewService = Depends(get_review_service)):
    """Delete the customer's reviews product by product, then the customer."""
    try:
        result = service.remove_customer(customer_id)
    except ReviewEngineError as e:
        raise _to_http(e)
    return CustomerCascadeResponse(
        customer_id=result.customer_id,
        reviews_deleted=result.reviews_deleted,
        ratings_detached=result.ratings_detached,
        products_affected=result.products_affected,
        average_ratings=result.aggregates,
    )
