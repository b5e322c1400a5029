"""
Error taxonomy shared by the fact store adapters and the aggregation engine.

    ValidationError     - bad input, rejected before any write
    ReferenceNotFound   - an id that does not resolve (a ValidationError)
    IntegrityFault      - store contradicts its own invariants; fatal, not retried
    ContentionTimeout   - product lock not acquired in time; caller may resubmit
"""

from typing import Iterable, Optional


class ReviewEngineError(Exception):
    """Base exception for review aggregation errors."""

    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(ReviewEngineError):
    """Input rejected before reaching the store."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class ReferenceNotFound(ValidationError):
    """A referenced Product, Customer or Review does not exist."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found", field=f"{entity.lower()}_id")


class IntegrityFault(ReviewEngineError):
    """Store state violates an invariant the engine relies on."""
    pass


class ContentionTimeout(ReviewEngineError):
    """Exclusive access to one or more products could not be obtained in time."""

    retryable = True

    def __init__(self, product_ids: Iterable[int], timeout: Optional[float] = None, reason: Optional[str] = None):
        self.product_ids = sorted(product_ids)
        self.timeout = timeout
        message = reason or f"Timed out after {timeout}s waiting for product lock(s) {self.product_ids}"
        super().__init__(message)
