"""
Fact Store Port
===============

Abstract interface the aggregation engine reads from and writes to.
Two adapters ship with the project:

    MemoryFactStore   - in-process, thread-safe (memory_store.py)
    PostgresFactStore - psycopg2 over a ThreadedConnectionPool (postgres_store.py)

A FactSession is one transaction. Sessions are obtained from the store:

    with store.product_scope([product_id], timeout=5.0) as session:
        session.create_review(review)
        ...                                # committed on clean exit

    with store.session() as session:
        session.list_reviews()             # committed state only

product_scope() holds an exclusive lock on every listed product for the
lifetime of the session; any exception rolls the session back.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import ContextManager, Iterable, List, Optional

from .data_models import Customer, Product, Rating, Review


class FactSession(ABC):
    """One transactional unit of work against the fact store."""

    # ---- Lookups ----------------------------------------------------------

    @abstractmethod
    def get_product(self, product_id: int) -> Optional[Product]:
        ...

    @abstractmethod
    def get_customer(self, customer_id: int) -> Optional[Customer]:
        ...

    @abstractmethod
    def get_review(self, review_id: int) -> Optional[Review]:
        ...

    @abstractmethod
    def get_reviews_by_product(self, product_id: int) -> List[Review]:
        ...

    @abstractmethod
    def get_reviews_by_customer(self, customer_id: int) -> List[Review]:
        ...

    # ---- Review writes ----------------------------------------------------

    @abstractmethod
    def create_review(self, review: Review) -> Review:
        """Insert a review and return it with review_id assigned."""

    @abstractmethod
    def update_review(self, review: Review) -> Review:
        ...

    @abstractmethod
    def delete_review(self, review_id: int) -> None:
        ...

    @abstractmethod
    def write_product_aggregate(self, product_id: int, value: Optional[Decimal]) -> None:
        """Persist Product.average_rating. Raises IntegrityFault if the product is gone."""

    # ---- Other writes -----------------------------------------------------

    @abstractmethod
    def create_rating(self, rating: Rating) -> Rating:
        ...

    @abstractmethod
    def detach_customer_ratings(self, customer_id: int) -> int:
        """Clear customer_id on the customer's Ratings. Returns rows touched."""

    @abstractmethod
    def delete_customer(self, customer_id: int) -> None:
        ...

    @abstractmethod
    def create_customer(self, customer: Customer) -> Customer:
        ...

    @abstractmethod
    def create_product(self, product: Product) -> Product:
        ...

    # ---- Scans (reports) --------------------------------------------------

    @abstractmethod
    def list_products(self) -> List[Product]:
        ...

    @abstractmethod
    def list_customers(self) -> List[Customer]:
        ...

    @abstractmethod
    def list_reviews(self) -> List[Review]:
        ...

    @abstractmethod
    def list_ratings(self) -> List[Rating]:
        ...


class FactStore(ABC):
    """Factory for fact store sessions."""

    @abstractmethod
    def product_scope(self, product_ids: Iterable[int], timeout: float) -> ContextManager[FactSession]:
        """
        Open a write session holding exclusive locks on product_ids.

        Locks are taken in ascending product_id order. Raises
        ContentionTimeout if they cannot all be obtained within timeout.
        """

    @abstractmethod
    def session(self) -> ContextManager[FactSession]:
        """Open a session without product locks (reads, customer and seed writes)."""

    @abstractmethod
    def health(self) -> dict:
        ...

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
