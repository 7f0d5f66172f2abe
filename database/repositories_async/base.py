"""Base repository with async PostgreSQL connection pooling

All repositories inherit from BaseRepository and share:
- Connection pool (no connection per-instance)
- Query execution helpers that wrap driver failures in DatabaseError
- Logging infrastructure

Return Type Conventions
-----------------------
    get_X(id) -> Optional[T]
        Single entity lookup by primary key.
        Returns None if entity not found.

    get_Xs(...) -> List[T]
        Multiple entity retrieval with filters.
        Returns empty list [] if none match.

    get_X_batch(ids) -> Dict[str, T]
        Batch lookup by multiple IDs.
        Missing IDs are absent from dict (not errors).

Connection Patterns
-------------------
    self.pool.acquire()
        Use for read-only queries that don't need atomicity.
"""

import asyncpg
from typing import Any, List, Optional

from config import get_logger
from exceptions import DataIntegrityError, DatabaseConnectionError, DatabaseError

logger = get_logger(__name__).bind(component="repository")

# Driver-level failures; programming errors are left to propagate
_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError)
_CONNECTION_ERRORS = (OSError, ConnectionError, asyncpg.PostgresConnectionError)


class BaseRepository:
    """Base class for async PostgreSQL repositories

    Design Principles:
    - Pool is passed in, not created (singleton pattern)
    - Queries use $1, $2 placeholders (PostgreSQL parameterization)
    - All methods are async (no sync fallbacks)
    """

    def __init__(self, pool: asyncpg.Pool):
        """Initialize repository with shared connection pool

        Args:
            pool: asyncpg connection pool (shared across all repositories)
        """
        self.pool = pool

    @staticmethod
    def _wrap(error: Exception, query: str) -> DatabaseError:
        if isinstance(error, asyncpg.IntegrityConstraintViolationError):
            return DataIntegrityError(
                f"Constraint violation: {error}",
                table=getattr(error, "table_name", None),
                constraint=getattr(error, "constraint_name", None),
            )
        context = {'query': query.strip()[:100]}
        if isinstance(error, _CONNECTION_ERRORS):
            return DatabaseConnectionError(f"Database connection failed: {error}", context)
        return DatabaseError(f"Query execution failed: {error}", context)

    async def _fetchrow(self, query: str, *args: Any) -> Optional[asyncpg.Record]:
        """Execute query and fetch single row"""
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except _CONNECTION_ERRORS + _DRIVER_ERRORS as e:
            raise self._wrap(e, query) from e

    async def _fetch(self, query: str, *args: Any) -> List[asyncpg.Record]:
        """Execute query and fetch all rows"""
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except _CONNECTION_ERRORS + _DRIVER_ERRORS as e:
            raise self._wrap(e, query) from e

    async def _execute(self, query: str, *args: Any) -> str:
        """Execute query without returning rows (INSERT, UPDATE, DELETE)"""
        try:
            async with self.pool.acquire() as conn:
                return await conn.execute(query, *args)
        except _CONNECTION_ERRORS + _DRIVER_ERRORS as e:
            raise self._wrap(e, query) from e

    async def _executemany(self, query: str, args: List[tuple]) -> None:
        """Execute query multiple times with different parameters

        More efficient than looping _execute() for bulk operations.

        Args:
            query: SQL query with $1, $2, etc. placeholders
            args: List of parameter tuples
        """
        try:
            async with self.pool.acquire() as conn:
                await conn.executemany(query, args)
        except _CONNECTION_ERRORS + _DRIVER_ERRORS as e:
            raise self._wrap(e, query) from e

    @staticmethod
    def _parse_row_count(result: str) -> int:
        """Extract row count from PostgreSQL result like 'UPDATE 5' or 'DELETE 3'."""
        if not result:
            return 0
        return int(result.split()[-1])
