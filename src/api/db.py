"""
PRREVIEW Store Wiring
=====================

Process-wide fact store, built from settings on first use.
Uses psycopg2 with connection pooling when FACT_STORE_BACKEND=postgres,
otherwise an in-process MemoryFactStore.

The memory backend starts empty, and neither the HTTP API nor the CLI can
create products or customers. It is meant for tests and local development,
where the catalogue is seeded in-process through store.session(). A server
that should accept reviews from clients needs FACT_STORE_BACKEND=postgres
against a provisioned database.
"""

import logging
from typing import Optional

from ..data.config import get_settings
from ..data.fact_store import FactStore

logger = logging.getLogger(__name__)

_pool = None
_store: Optional[FactStore] = None


def get_pool():
    """Get or create connection pool (lazy singleton)."""
    global _pool
    if _pool is not None:
        return _pool

    from psycopg2 import pool as pg_pool
    db_config = get_settings().database
    _pool = pg_pool.ThreadedConnectionPool(
        db_config.pool_min_size,
        db_config.pool_max_size,
        **db_config.connection_dict
    )
    logger.info(f"DB pool created: {db_config.host}:{db_config.port}/{db_config.name}")
    return _pool


def close_pool():
    """Close the connection pool."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None
        logger.info("DB pool closed")


def get_store() -> FactStore:
    """Get or create the fact store selected by FACT_STORE_BACKEND."""
    global _store
    if _store is not None:
        return _store

    backend = get_settings().store_backend
    if backend == "postgres":
        from ..data.postgres_store import PostgresFactStore
        _store = PostgresFactStore(db_pool=get_pool())
    else:
        from ..data.memory_store import MemoryFactStore
        _store = MemoryFactStore()
        logger.warning(
            "Using the in-memory fact store: it starts with no products or customers "
            "and is lost on exit. Set FACT_STORE_BACKEND=postgres for a real deployment."
        )
    logger.info(f"Fact store ready: backend={backend}")
    return _store


def close_store():
    """Drop the store and release its pool."""
    global _store
    if _store is not None:
        _store.close()
        _store = None
    close_pool()


def check_health() -> dict:
    """
    Check store health. Returns status dict.
    Non-blocking: returns 'disconnected' if the store is not reachable.
    """
    try:
        return get_store().health()
    except Exception as e:
        logger.warning(f"Store health check failed: {e}")
        return {"status": "disconnected", "error": str(e)}
