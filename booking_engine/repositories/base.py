"""Base class for PostgreSQL-backed repositories."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Tuple, Type

import asyncpg

from ..core.exceptions import TransientStorageError
from ..models.database import Database

# Errors a retry of the whole operation can clear
TRANSIENT_PG_ERRORS: Tuple[Type[Exception], ...] = (
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.LockNotAvailableError,
)


class PostgresRepository:
    """Holds the database handle and hands out connections.

    Methods that take an optional ``conn`` run on that connection, which lets
    callers compose several repository calls inside one transaction.
    """

    def __init__(self, database: Database):
        """
        Initialize repository with database connection.

        Args:
            database: Database instance
        """
        self.db = database

    @asynccontextmanager
    async def _connection(
        self, conn: Optional[asyncpg.Connection] = None
    ) -> AsyncIterator[asyncpg.Connection]:
        """
        Use ``conn`` when given, otherwise borrow one from the pool.

        Deadlocks, serialization failures and lock timeouts are re-raised as
        TransientStorageError so the retry policy can recognise them.
        """
        try:
            if conn is not None:
                yield conn
            else:
                async with self.db.get_connection() as acquired:
                    yield acquired
        except TRANSIENT_PG_ERRORS as e:
            raise TransientStorageError(str(e), sqlstate=getattr(e, "sqlstate", None)) from e

    @staticmethod
    def _affected(command_tag: Any) -> int:
        """Rows affected by an ``execute`` call."""
        return Database.parse_command_tag(str(command_tag))
