"""
In-Process Fact Store
=====================

Thread-safe FactStore kept entirely in memory. Used by the test-suite, the
development server (FACT_STORE_BACKEND=memory) and anywhere a database is not
available.

Concurrency model:
    - one threading.Lock per product id, taken by product_scope() in
      ascending id order with a shared deadline
    - every session works on a snapshot of committed state taken when it
      opens, plus its own staged writes
    - commit() validates references and applies the staged writes under a
      short store-wide mutex, so readers never see half a mutation
"""

import itertools
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .data_models import Customer, Product, Rating, Review
from .errors import ContentionTimeout, IntegrityFault, ReferenceNotFound, ValidationError
from .fact_store import FactSession, FactStore

logger = logging.getLogger(__name__)


class MemorySession(FactSession):
    """Snapshot of the store plus staged writes. Applied atomically on commit."""

    def __init__(self, store: "MemoryFactStore"):
        self._store = store
        with store._mutex:
            self._customers: Dict[int, Customer] = dict(store._customers)
            self._products: Dict[int, Product] = dict(store._products)
            self._reviews: Dict[int, Review] = dict(store._reviews)
            self._ratings: Dict[int, Rating] = dict(store._ratings)

        # Staged writes; None marks a deletion
        self._staged_customers: Dict[int, Optional[Customer]] = {}
        self._staged_products: Dict[int, Product] = {}
        self._staged_reviews: Dict[int, Optional[Review]] = {}
        self._staged_ratings: Dict[int, Rating] = {}
        self._staged_aggregates: Dict[int, Optional[Decimal]] = {}

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    @staticmethod
    def _overlay(base: Dict, staged: Dict) -> Dict:
        merged = dict(base)
        merged.update(staged)
        return {key: value for key, value in merged.items() if value is not None}

    def _live_products(self) -> Dict[int, Product]:
        products = self._overlay(self._products, self._staged_products)
        for product_id, value in self._staged_aggregates.items():
            if product_id in products:
                products[product_id] = replace(products[product_id], average_rating=value)
        return products

    def _live_reviews(self) -> Dict[int, Review]:
        return self._overlay(self._reviews, self._staged_reviews)

    def _live_customers(self) -> Dict[int, Customer]:
        return self._overlay(self._customers, self._staged_customers)

    def _live_ratings(self) -> Dict[int, Rating]:
        return self._overlay(self._ratings, self._staged_ratings)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_product(self, product_id: int) -> Optional[Product]:
        product = self._live_products().get(product_id)
        return replace(product) if product else None

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        customer = self._live_customers().get(customer_id)
        return replace(customer) if customer else None

    def get_review(self, review_id: int) -> Optional[Review]:
        review = self._live_reviews().get(review_id)
        return replace(review) if review else None

    def get_reviews_by_product(self, product_id: int) -> List[Review]:
        return [replace(r) for _, r in sorted(self._live_reviews().items()) if r.product_id == product_id]

    def get_reviews_by_customer(self, customer_id: int) -> List[Review]:
        return [replace(r) for _, r in sorted(self._live_reviews().items()) if r.customer_id == customer_id]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_review(self, review: Review) -> Review:
        stored = replace(review, review_id=self._store._next_id("review"))
        self._staged_reviews[stored.review_id] = stored
        return replace(stored)

    def update_review(self, review: Review) -> Review:
        if review.review_id not in self._live_reviews():
            raise ReferenceNotFound("Review", review.review_id)
        self._staged_reviews[review.review_id] = replace(review)
        return replace(review)

    def delete_review(self, review_id: int) -> None:
        if review_id not in self._live_reviews():
            raise ReferenceNotFound("Review", review_id)
        self._staged_reviews[review_id] = None

    def write_product_aggregate(self, product_id: int, value: Optional[Decimal]) -> None:
        if product_id not in self._live_products():
            raise IntegrityFault(f"Cannot write average_rating: product {product_id} does not exist")
        self._staged_aggregates[product_id] = value

    def create_rating(self, rating: Rating) -> Rating:
        stored = replace(rating, rating_id=self._store._next_id("rating"))
        self._staged_ratings[stored.rating_id] = stored
        return replace(stored)

    def detach_customer_ratings(self, customer_id: int) -> int:
        touched = 0
        for rating_id, rating in self._live_ratings().items():
            if rating.customer_id == customer_id:
                self._staged_ratings[rating_id] = replace(rating, customer_id=None)
                touched += 1
        return touched

    def delete_customer(self, customer_id: int) -> None:
        if customer_id not in self._live_customers():
            raise ReferenceNotFound("Customer", customer_id)
        self._staged_customers[customer_id] = None

    def create_customer(self, customer: Customer) -> Customer:
        if any(c.email == customer.email for c in self._live_customers().values()):
            raise ValidationError(f"Email already registered: {customer.email}", field="email")
        stored = replace(customer, customer_id=self._store._next_id("customer"))
        self._staged_customers[stored.customer_id] = stored
        return replace(stored)

    def create_product(self, product: Product) -> Product:
        # average_rating is derived; a new product has no reviews yet
        stored = replace(product, product_id=self._store._next_id("product"), average_rating=None)
        self._staged_products[stored.product_id] = stored
        return replace(stored)

    # -------------------------------------------------------------------------
    # Scans
    # -------------------------------------------------------------------------

    def list_products(self) -> List[Product]:
        return [replace(p) for _, p in sorted(self._live_products().items())]

    def list_customers(self) -> List[Customer]:
        return [replace(c) for _, c in sorted(self._live_customers().items())]

    def list_reviews(self) -> List[Review]:
        return [replace(r) for _, r in sorted(self._live_reviews().items())]

    def list_ratings(self) -> List[Rating]:
        return [replace(r) for _, r in sorted(self._live_ratings().items())]

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    def _has_writes(self) -> bool:
        return any((
            self._staged_customers, self._staged_products, self._staged_reviews,
            self._staged_ratings, self._staged_aggregates,
        ))

    def commit(self) -> None:
        """Validate staged writes against current committed state and apply them."""
        if not self._has_writes():
            return

        store = self._store
        with store._mutex:
            customers = self._overlay(store._customers, self._staged_customers)
            products = self._overlay(store._products, self._staged_products)
            reviews = self._overlay(store._reviews, self._staged_reviews)
            ratings = self._overlay(store._ratings, self._staged_ratings)

            # Another session may have committed the same email since our snapshot
            for customer_id, customer in self._staged_customers.items():
                if customer is None:
                    continue
                if any(other_id != customer_id and other.email == customer.email
                       for other_id, other in customers.items()):
                    raise ValidationError(f"Email already registered: {customer.email}", field="email")

            for review in self._staged_reviews.values():
                if review is None:
                    continue
                if review.product_id not in products:
                    raise ReferenceNotFound("Product", review.product_id)
                if review.customer_id not in customers:
                    raise ReferenceNotFound("Customer", review.customer_id)

            for rating in self._staged_ratings.values():
                if rating.product_id not in products:
                    raise ReferenceNotFound("Product", rating.product_id)
                if rating.customer_id is not None and rating.customer_id not in customers:
                    raise ReferenceNotFound("Customer", rating.customer_id)

            for customer_id, customer in self._staged_customers.items():
                if customer is not None:
                    continue
                if any(r.customer_id == customer_id for r in reviews.values()) or \
                        any(r.customer_id == customer_id for r in ratings.values()):
                    raise ContentionTimeout(
                        [], reason=f"Customer {customer_id} gained dependents while being deleted",
                    )

            for product_id in self._staged_aggregates:
                if product_id not in products:
                    raise IntegrityFault(f"Cannot write average_rating: product {product_id} does not exist")

            for product_id, value in self._staged_aggregates.items():
                products[product_id] = replace(products[product_id], average_rating=value)

            store._customers = customers
            store._products = products
            store._reviews = reviews
            store._ratings = ratings


class MemoryFactStore(FactStore):
    """
    FactStore held in process memory.

    Records are stored as dataclass instances that are never mutated in
    place; every read hands out a copy.
    """

    def __init__(self):
        self._mutex = threading.RLock()
        self._customers: Dict[int, Customer] = {}
        self._products: Dict[int, Product] = {}
        self._reviews: Dict[int, Review] = {}
        self._ratings: Dict[int, Rating] = {}

        self._sequences = {
            "customer": itertools.count(1),
            "product": itertools.count(1),
            "review": itertools.count(1),
            "rating": itertools.count(1),
        }

        self._locks_guard = threading.Lock()
        self._product_locks: Dict[int, threading.Lock] = {}

        logger.info("MemoryFactStore initialized")

    def _next_id(self, entity: str) -> int:
        with self._mutex:
            return next(self._sequences[entity])

    def _lock_for(self, product_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._product_locks.get(product_id)
            if lock is None:
                lock = self._product_locks[product_id] = threading.Lock()
            return lock

    @contextmanager
    def product_scope(self, product_ids: Iterable[int], timeout: float):
        ordered = sorted(set(product_ids))
        deadline = time.monotonic() + timeout
        held: List[threading.Lock] = []
        try:
            for product_id in ordered:
                lock = self._lock_for(product_id)
                if not lock.acquire(timeout=max(0.0, deadline - time.monotonic())):
                    logger.warning(
                        f"Lock wait on product {product_id} exceeded {timeout}s",
                        extra={"product_id": product_id},
                    )
                    raise ContentionTimeout(ordered, timeout)
                held.append(lock)

            with self.session() as session:
                yield session
        finally:
            for lock in reversed(held):
                lock.release()

    @contextmanager
    def session(self):
        session = MemorySession(self)
        yield session
        # An exception raised inside the block skips this; staged writes are dropped
        session.commit()

    def health(self) -> dict:
        with self._mutex:
            return {
                "status": "connected",
                "backend": "memory",
                "customers": len(self._customers),
                "products": len(self._products),
                "reviews": len(self._reviews),
                "ratings": len(self._ratings),
            }
