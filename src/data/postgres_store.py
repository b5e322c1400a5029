"""
PostgreSQL Fact Store
=====================

FactStore backed by PostgreSQL through a psycopg2 ThreadedConnectionPool.

Expected tables (provisioned outside this project):

    customers (customer_id SERIAL PK, name, email UNIQUE, contact_info)
    products  (product_id SERIAL PK, name, category, price NUMERIC(10,2),
               description, average_rating NUMERIC(3,2) NULL)
    reviews   (review_id SERIAL PK, product_id FK NOT NULL, customer_id FK NOT NULL,
               rating INT CHECK (rating BETWEEN 1 AND 5), review_text TEXT, review_date DATE)
    ratings   (rating_id SERIAL PK, product_id FK NOT NULL, customer_id FK NULL,
               rating_value INT CHECK (rating_value BETWEEN 1 AND 5), rating_date DATE)

Foreign keys must NOT cascade; the engine performs cascades explicitly.

Per-product exclusivity is a row lock: product_scope() sets a LOCAL
lock_timeout and takes SELECT ... FOR UPDATE on the product rows, in
product_id order, at the start of its transaction.

Usage:
    store = PostgresFactStore()
    with store.product_scope([42], timeout=5.0) as session:
        session.get_reviews_by_product(42)
"""

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterable, List, Optional

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2 import pool
from psycopg2.extras import RealDictCursor

from .data_models import Customer, Product, Rating, Review
from .errors import (
    ContentionTimeout,
    IntegrityFault,
    ReferenceNotFound,
    ReviewEngineError,
    ValidationError,
)
from .fact_store import FactSession, FactStore

logger = logging.getLogger(__name__)


class DatabaseError(ReviewEngineError):
    """Database operation error."""
    pass


_CUSTOMER_COLUMNS = "customer_id, name, email, contact_info"
_PRODUCT_COLUMNS = "product_id, name, category, price, description, average_rating"
_REVIEW_COLUMNS = "review_id, product_id, customer_id, rating, review_text, review_date"
_RATING_COLUMNS = "rating_id, product_id, customer_id, rating_value, rating_date"


def _missing_reference(error, product_id, customer_id) -> ReferenceNotFound:
    """Name the entity a foreign-key violation points at (constraint name, else message)."""
    diag = getattr(error, "diag", None)
    constraint = getattr(diag, "constraint_name", None) or str(error)
    if "product" in constraint:
        return ReferenceNotFound("Product", product_id)
    return ReferenceNotFound("Customer", customer_id)


class PostgresSession(FactSession):
    """FactSession bound to one pooled connection / transaction."""

    def __init__(self, conn):
        self._conn = conn

    def _fetchone(self, sql: str, params=None) -> Optional[dict]:
        with self._conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(sql, params)
            return cur.fetchone()

    def _fetchall(self, sql: str, params=None) -> List[dict]:
        with self._conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(sql, params)
            return cur.fetchall()

    def _execute(self, sql: str, params=None) -> int:
        with self._conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.rowcount

    # ---- Lookups ----------------------------------------------------------

    def get_product(self, product_id: int) -> Optional[Product]:
        row = self._fetchone(f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE product_id = %s", (product_id,))
        return Product(**row) if row else None

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        row = self._fetchone(f"SELECT {_CUSTOMER_COLUMNS} FROM customers WHERE customer_id = %s", (customer_id,))
        return Customer(**row) if row else None

    def get_review(self, review_id: int) -> Optional[Review]:
        row = self._fetchone(f"SELECT {_REVIEW_COLUMNS} FROM reviews WHERE review_id = %s", (review_id,))
        return Review(**row) if row else None

    def get_reviews_by_product(self, product_id: int) -> List[Review]:
        rows = self._fetchall(
            f"SELECT {_REVIEW_COLUMNS} FROM reviews WHERE product_id = %s ORDER BY review_id",
            (product_id,),
        )
        return [Review(**row) for row in rows]

    def get_reviews_by_customer(self, customer_id: int) -> List[Review]:
        rows = self._fetchall(
            f"SELECT {_REVIEW_COLUMNS} FROM reviews WHERE customer_id = %s ORDER BY review_id",
            (customer_id,),
        )
        return [Review(**row) for row in rows]

    # ---- Review writes ----------------------------------------------------

    def create_review(self, review: Review) -> Review:
        try:
            row = self._fetchone(f"""
                INSERT INTO reviews (product_id, customer_id, rating, review_text, review_date)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {_REVIEW_COLUMNS}
            """, (review.product_id, review.customer_id, review.rating, review.review_text, review.review_date))
        except pg_errors.ForeignKeyViolation as e:
            raise _missing_reference(e, review.product_id, review.customer_id) from e
        except pg_errors.CheckViolation as e:
            raise ValidationError(f"Rating rejected by store: {review.rating}", field="rating") from e
        return Review(**row)

    def update_review(self, review: Review) -> Review:
        try:
            row = self._fetchone(f"""
                UPDATE reviews
                SET product_id = %s, customer_id = %s, rating = %s, review_text = %s, review_date = %s
                WHERE review_id = %s
                RETURNING {_REVIEW_COLUMNS}
            """, (
                review.product_id, review.customer_id, review.rating,
                review.review_text, review.review_date, review.review_id,
            ))
        except pg_errors.ForeignKeyViolation as e:
            raise _missing_reference(e, review.product_id, review.customer_id) from e
        except pg_errors.CheckViolation as e:
            raise ValidationError(f"Rating rejected by store: {review.rating}", field="rating") from e
        if row is None:
            raise ReferenceNotFound("Review", review.review_id)
        return Review(**row)

    def delete_review(self, review_id: int) -> None:
        if self._execute("DELETE FROM reviews WHERE review_id = %s", (review_id,)) == 0:
            raise ReferenceNotFound("Review", review_id)

    def write_product_aggregate(self, product_id: int, value: Optional[Decimal]) -> None:
        affected = self._execute(
            "UPDATE products SET average_rating = %s WHERE product_id = %s",
            (value, product_id),
        )
        if affected == 0:
            raise IntegrityFault(f"Cannot write average_rating: product {product_id} does not exist")

    # ---- Other writes -----------------------------------------------------

    def create_rating(self, rating: Rating) -> Rating:
        try:
            row = self._fetchone(f"""
                INSERT INTO ratings (product_id, customer_id, rating_value, rating_date)
                VALUES (%s, %s, %s, %s)
                RETURNING {_RATING_COLUMNS}
            """, (rating.product_id, rating.customer_id, rating.rating_value, rating.rating_date))
        except pg_errors.ForeignKeyViolation as e:
            raise _missing_reference(e, rating.product_id, rating.customer_id) from e
        except pg_errors.CheckViolation as e:
            raise ValidationError(f"Rating rejected by store: {rating.rating_value}", field="rating_value") from e
        return Rating(**row)

    def detach_customer_ratings(self, customer_id: int) -> int:
        return self._execute("UPDATE ratings SET customer_id = NULL WHERE customer_id = %s", (customer_id,))

    def delete_customer(self, customer_id: int) -> None:
        try:
            affected = self._execute("DELETE FROM customers WHERE customer_id = %s", (customer_id,))
        except pg_errors.ForeignKeyViolation as e:
            raise ContentionTimeout(
                [], reason=f"Customer {customer_id} gained dependents while being deleted",
            ) from e
        if affected == 0:
            raise ReferenceNotFound("Customer", customer_id)

    def create_customer(self, customer: Customer) -> Customer:
        try:
            row = self._fetchone(f"""
                INSERT INTO customers (name, email, contact_info)
                VALUES (%s, %s, %s)
                RETURNING {_CUSTOMER_COLUMNS}
            """, (customer.name, customer.email, customer.contact_info))
        except pg_errors.UniqueViolation as e:
            raise ValidationError(f"Email already registered: {customer.email}", field="email") from e
        return Customer(**row)

    def create_product(self, product: Product) -> Product:
        row = self._fetchone(f"""
            INSERT INTO products (name, category, price, description)
            VALUES (%s, %s, %s, %s)
            RETURNING {_PRODUCT_COLUMNS}
        """, (product.name, product.category, product.price, product.description))
        return Product(**row)

    # ---- Scans ------------------------------------------------------------

    def list_products(self) -> List[Product]:
        return [Product(**row) for row in self._fetchall(
            f"SELECT {_PRODUCT_COLUMNS} FROM products ORDER BY product_id"
        )]

    def list_customers(self) -> List[Customer]:
        return [Customer(**row) for row in self._fetchall(
            f"SELECT {_CUSTOMER_COLUMNS} FROM customers ORDER BY customer_id"
        )]

    def list_reviews(self) -> List[Review]:
        return [Review(**row) for row in self._fetchall(
            f"SELECT {_REVIEW_COLUMNS} FROM reviews ORDER BY review_id"
        )]

    def list_ratings(self) -> List[Rating]:
        return [Rating(**row) for row in self._fetchall(
            f"SELECT {_RATING_COLUMNS} FROM ratings ORDER BY rating_id"
        )]


class PostgresFactStore(FactStore):
    """FactStore over a psycopg2 connection pool."""

    def __init__(self, db_pool: Optional[pool.ThreadedConnectionPool] = None):
        """
        Args:
            db_pool: Database connection pool (created from settings if None)
        """
        self._db_pool = db_pool
        self._own_pool = db_pool is None

    @property
    def db_pool(self) -> pool.ThreadedConnectionPool:
        """Lazy-initialize database connection pool."""
        if self._db_pool is None:
            from .config import get_settings
            db_config = get_settings().database
            self._db_pool = pool.ThreadedConnectionPool(
                minconn=db_config.pool_min_size,
                maxconn=db_config.pool_max_size,
                **db_config.connection_dict
            )
            logger.info("Database connection pool created")
        return self._db_pool

    @contextmanager
    def _connection(self):
        """
        Borrow a connection for one transaction.

        Commits on clean exit, rolls back otherwise. Engine errors pass
        through; other driver errors are wrapped in DatabaseError.
        """
        conn = self.db_pool.getconn()
        try:
            yield conn
            conn.commit()
        except ReviewEngineError:
            conn.rollback()
            raise
        except psycopg2.Error as e:
            conn.rollback()
            raise DatabaseError(f"Database operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            self.db_pool.putconn(conn)

    @contextmanager
    def product_scope(self, product_ids: Iterable[int], timeout: float):
        ordered = sorted(set(product_ids))
        with self._connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute("SET LOCAL lock_timeout = %s", (f"{max(1, int(timeout * 1000))}ms",))
                    cur.execute(
                        "SELECT product_id FROM products WHERE product_id = ANY(%s) "
                        "ORDER BY product_id FOR UPDATE",
                        (ordered,),
                    )
            except pg_errors.LockNotAvailable as e:
                logger.warning(f"Lock wait on products {ordered} exceeded {timeout}s")
                raise ContentionTimeout(ordered, timeout) from e
            yield PostgresSession(conn)

    @contextmanager
    def session(self):
        with self._connection() as conn:
            yield PostgresSession(conn)

    def health(self) -> dict:
        """
        Check database health. Returns status dict.
        Non-blocking: returns 'disconnected' if DB is not reachable.
        """
        try:
            with self._connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT version()")
                    row = cur.fetchone()
            version = row[0].split(",")[0] if row and row[0] else "unknown"
            return {"status": "connected", "backend": "postgres", "version": version}
        except Exception as e:
            logger.warning(f"DB health check failed: {e}")
            return {"status": "disconnected", "backend": "postgres", "error": str(e)}

    def close(self):
        """Clean up resources."""
        if self._own_pool and self._db_pool is not None:
            self._db_pool.closeall()
            self._db_pool = None
            logger.info("Database connection pool closed")
