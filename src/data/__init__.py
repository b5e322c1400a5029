"""
PRREVIEW Data Module
====================

Fact store port and adapters for customers, products, reviews and ratings.

This module provides:
    - FactStore / FactSession: transactional port used by the engine
    - MemoryFactStore: thread-safe in-process adapter
    - PostgresFactStore: psycopg2 adapter with row-lock product scopes
    - Data models: Customer, Product, Review, Rating, Sentiment
    - Error taxonomy: ValidationError, ReferenceNotFound, IntegrityFault, ContentionTimeout

Quick Start:
    from src.data import MemoryFactStore

    store = MemoryFactStore()
    with store.session() as session:
        product = session.create_product(Product(name="Laptop"))

Configuration:
    Set environment variables or create a .env file.
    FACT_STORE_BACKEND selects the adapter (memory | postgres).
"""

from .config import settings, get_settings, Settings
from .data_models import (
    Customer,
    Product,
    Review,
    Rating,
    Sentiment,
    RATING_MIN,
    RATING_MAX,
)
from .errors import (
    ReviewEngineError,
    ValidationError,
    ReferenceNotFound,
    IntegrityFault,
    ContentionTimeout,
)
from .fact_store import FactStore, FactSession
from .memory_store import MemoryFactStore
from .postgres_store import PostgresFactStore, DatabaseError

__version__ = "1.0.0"

__all__ = [
    # Configuration
    "settings",
    "get_settings",
    "Settings",
    # Data models
    "Customer",
    "Product",
    "Review",
    "Rating",
    "Sentiment",
    "RATING_MIN",
    "RATING_MAX",
    # Errors
    "ReviewEngineError",
    "ValidationError",
    "ReferenceNotFound",
    "IntegrityFault",
    "ContentionTimeout",
    "DatabaseError",
    # Stores
    "FactStore",
    "FactSession",
    "MemoryFactStore",
    "PostgresFactStore",
]
