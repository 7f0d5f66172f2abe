"""PostgreSQL Database Layer with Repository Pattern

Owns the asyncpg pool and the two repositories the statement selection
engine needs:
- weights: the durable weight cache (WeightStore)
- polls: read-only upstream signals (SignalSource)
"""

import asyncpg
import json
from typing import Optional
from pathlib import Path

from config import get_logger, config
from database.repositories_async import PollSignalRepository, WeightRepository
from exceptions import DatabaseConnectionError

logger = get_logger(__name__).bind(component="database_postgres")


def _jsonb_encoder(obj):
    """JSONB encoder with automatic Pydantic model serialization.

    Handles:
    - Native Python types (dict, list, str, int, float, bool, None)
    - Pydantic models (via model_dump()), e.g. weight components
    """
    def default(o):
        if hasattr(o, 'model_dump'):
            return o.model_dump()
        raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")

    return json.dumps(obj, default=default)


class Database:
    """Async PostgreSQL database with repository pattern

    Usage:
        db = await Database.create()
        weights = await db.weights.get_weights_batch("poll-1", ["s1", "s2"])
        await db.close()
    """

    pool: asyncpg.Pool

    weights: WeightRepository
    polls: PollSignalRepository

    def __init__(self, pool: asyncpg.Pool):
        """Initialize with connection pool and repositories

        Use Database.create() classmethod instead of direct instantiation.
        """
        self.pool = pool

        self.weights = WeightRepository(pool)
        self.polls = PollSignalRepository(pool)

        logger.info("database initialized with repositories")

    @classmethod
    async def create(
        cls,
        dsn: Optional[str] = None,
        min_size: int = config.POSTGRES_POOL_MIN_SIZE,
        max_size: int = config.POSTGRES_POOL_MAX_SIZE
    ) -> "Database":
        """Create database with connection pool

        Args:
            dsn: PostgreSQL connection string (defaults to config.get_postgres_dsn())
            min_size: Minimum pool size (default: config.POSTGRES_POOL_MIN_SIZE)
            max_size: Maximum pool size (default: config.POSTGRES_POOL_MAX_SIZE)

        Returns:
            Initialized Database instance

        Raises:
            DatabaseConnectionError: If the pool cannot be created
        """
        if dsn is None:
            dsn = config.get_postgres_dsn()

        async def init_connection(conn):
            """Initialize connection with JSONB codec for automatic serialization"""
            await conn.set_type_codec(
                'jsonb',
                encoder=_jsonb_encoder,
                decoder=json.loads,
                schema='pg_catalog'
            )

        try:
            pool = await asyncpg.create_pool(
                dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=config.POSTGRES_COMMAND_TIMEOUT,
                init=init_connection,
            )
            logger.info("connection pool created", min_size=min_size, max_size=max_size)
            return cls(pool)
        except (asyncpg.PostgresError, OSError, ConnectionError) as e:
            # Connection-specific errors only - let programming errors fail loudly
            logger.error("failed to create connection pool", error=str(e))
            raise DatabaseConnectionError(f"Failed to connect to PostgreSQL: {e}") from e

    async def close(self):
        """Close connection pool"""
        await self.pool.close()
        logger.info("connection pool closed")

    async def init_schema(self):
        """Initialize database schema from schema_postgres.sql

        Safe to call multiple times (uses IF NOT EXISTS).
        """
        schema_path = Path(__file__).parent / "schema_postgres.sql"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_path}")

        schema_sql = schema_path.read_text()

        async with self.pool.acquire() as conn:
            await conn.execute(schema_sql)

        logger.info("schema initialized")
