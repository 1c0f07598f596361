"""Database and connection pool constants."""

from typing import Final


class Database:
    """Database configuration defaults.

    NOTE: These are compile-time defaults only. Runtime configuration
    should be obtained via EngineSettings (booking_engine/core/config/settings.py)
    which provides environment variable parsing, validation, and type coercion.
    """

    DEFAULT_URL: Final[str] = "postgresql://localhost:5432/booking_engine"
    TEST_URL: Final[str] = "postgresql://localhost:5432/booking_engine_test"
    POOL_SIZE: Final[int] = 10
    CONNECTION_TIMEOUT: Final[float] = 30.0
    COMMAND_TIMEOUT: Final[float] = 60.0


class Pools:
    """Connection pool sizes."""

    DATABASE: Final[int] = Database.POOL_SIZE
    HTTP_LIMIT: Final[int] = 50
    HTTP_LIMIT_PER_HOST: Final[int] = 20
    DNS_CACHE_TTL: Final[int] = 120
    KEEPALIVE_TIMEOUT: Final[int] = 30


class PgErrorCodes:
    """PostgreSQL SQLSTATE codes the storage layer reacts to."""

    UNIQUE_VIOLATION: Final[str] = "23505"
    SERIALIZATION_FAILURE: Final[str] = "40001"
    DEADLOCK_DETECTED: Final[str] = "40P01"
    LOCK_NOT_AVAILABLE: Final[str] = "55P03"
