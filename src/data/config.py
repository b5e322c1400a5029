"""
PRREVIEW Configuration Module
=============================

Settings for the fact store, aggregate maintenance and logging, read from
the process environment (a .env file at the repository root is loaded first
when present).

Environment Variables:
    FACT_STORE_BACKEND: "memory" or "postgres" (default: memory; the memory
        backend starts empty and suits tests and local runs only)

    DATABASE_HOST / DATABASE_PORT: PostgreSQL server (default: localhost:5432)
    DATABASE_NAME: Database name (default: prreview)
    DATABASE_USER: Database user (default: prreview_app)
    DATABASE_PASSWORD: Database password (required for the postgres backend)
    DATABASE_POOL_MIN / DATABASE_POOL_MAX: Pool bounds (default: 2 / 10)

    AGGREGATE_LOCK_TIMEOUT_SECONDS: Bounded wait for a product lock (default: 5.0)
    AGGREGATE_CASCADE_MAX_PASSES: Retry passes for cascades and moved reviews (default: 3)
    REPORT_TOP_RATED_LIMIT: Rows returned by the top-rated report (default: 10)

    LOG_LEVEL, LOG_FORMAT, LOG_FILE, LOG_JSON: see LoggingConfig
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv


_dotenv_file = Path(__file__).resolve().parents[2] / ".env"
if _dotenv_file.exists():
    load_dotenv(_dotenv_file)

STORE_BACKENDS = ("memory", "postgres")

T = TypeVar("T")


def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Raw environment value, or default when the variable is unset."""
    return os.getenv(key, default)


def _typed_env(key: str, default: T, cast: Callable[[str], T], kind: str) -> T:
    raw = os.getenv(key)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{key} must be {kind}, got: {raw!r}")


def get_env_int(key: str, default: int) -> int:
    return _typed_env(key, default, int, "an integer")


def get_env_float(key: str, default: float) -> float:
    return _typed_env(key, default, float, "a number")


def get_env_bool(key: str, default: bool) -> bool:
    """true/1/yes/on (any case) is True; any other value is False."""
    raw = os.getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes", "on")


@dataclass
class DatabaseConfig:
    """Connection settings for the PostgreSQL fact store."""

    host: str = field(default_factory=lambda: get_env("DATABASE_HOST", "localhost"))
    port: int = field(default_factory=lambda: get_env_int("DATABASE_PORT", 5432))
    name: str = field(default_factory=lambda: get_env("DATABASE_NAME", "prreview"))
    user: str = field(default_factory=lambda: get_env("DATABASE_USER", "prreview_app"))
    password: str = field(default_factory=lambda: get_env("DATABASE_PASSWORD", ""))

    # ThreadedConnectionPool bounds
    pool_min_size: int = field(default_factory=lambda: get_env_int("DATABASE_POOL_MIN", 2))
    pool_max_size: int = field(default_factory=lambda: get_env_int("DATABASE_POOL_MAX", 10))

    connect_timeout: int = field(default_factory=lambda: get_env_int("DATABASE_CONNECT_TIMEOUT", 10))
    ssl_mode: str = field(default_factory=lambda: get_env("DATABASE_SSL_MODE", "prefer"))

    @property
    def connection_dict(self) -> dict:
        """Keyword arguments for psycopg2.connect / the pool constructor."""
        return dict(
            host=self.host,
            port=self.port,
            dbname=self.name,
            user=self.user,
            password=self.password,
            sslmode=self.ssl_mode,
            connect_timeout=self.connect_timeout,
        )

    def __post_init__(self):
        if self.pool_min_size < 1 or self.pool_min_size > self.pool_max_size:
            raise ValueError(
                f"Invalid pool bounds: min={self.pool_min_size}, max={self.pool_max_size}"
            )


@dataclass
class AggregationConfig:
    """Aggregate maintenance and reporting configuration."""

    # Bounded wait before a mutation gives up on a busy product
    lock_timeout_seconds: float = field(
        default_factory=lambda: get_env_float("AGGREGATE_LOCK_TIMEOUT_SECONDS", 5.0)
    )

    # Passes allowed for customer cascades and reviews that move while we wait
    cascade_max_passes: int = field(
        default_factory=lambda: get_env_int("AGGREGATE_CASCADE_MAX_PASSES", 3)
    )

    top_rated_limit: int = field(default_factory=lambda: get_env_int("REPORT_TOP_RATED_LIMIT", 10))

    def __post_init__(self):
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
        if self.cascade_max_passes < 1:
            raise ValueError("cascade_max_passes must be at least 1")
        if not 1 <= self.top_rated_limit <= 10:
            raise ValueError("top_rated_limit must be between 1 and 10")


@dataclass
class LoggingConfig:
    """Root logger setup consumed by setup_logging_from_settings()."""

    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    format: str = field(default_factory=lambda: get_env(
        "LOG_FORMAT",
        "%(asctime)s [%(levelname)-8s] %(name)-30s | %(message)s"
    ))
    log_file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE"))

    # One JSON object per line instead of the text format
    json_logs: bool = field(default_factory=lambda: get_env_bool("LOG_JSON", False))


@dataclass
class Settings:
    """All configuration sections plus the store backend selector."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    store_backend: str = field(default_factory=lambda: get_env("FACT_STORE_BACKEND", "memory"))

    app_name: str = "prreview"
    app_version: str = "1.0.0"

    def __post_init__(self):
        self.store_backend = self.store_backend.lower()
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(
                f"FACT_STORE_BACKEND must be one of {STORE_BACKENDS}, got: {self.store_backend}"
            )
        if self.store_backend == "postgres" and not self.database.password:
            raise ValueError("DATABASE_PASSWORD is required for the postgres backend")


def load_settings() -> Settings:
    """
    Build a Settings instance from the current environment.

    Raises:
        ValueError: a variable is malformed or a section fails validation
    """
    return Settings()


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide Settings, loaded on first access."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None


class _SettingsProxy:
    """Attribute access forwarded to get_settings()."""

    def __getattr__(self, name):
        return getattr(get_settings(), name)


settings = _SettingsProxy()
