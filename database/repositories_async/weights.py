"""Async WeightRepository - durable statement weight cache

Backs deliberation.weight_store.WeightStore with the statement_weights
table. One row per (poll_id, statement_id); components are stored as JSONB
tagged with their mode. Writes are idempotent upserts (last write wins),
invalidation deletes every row of a poll.
"""

from typing import Dict, List, Sequence

import asyncpg

from config import get_logger
from database.models import StatementWeight
from database.repositories_async.base import BaseRepository
from exceptions import DatabaseError, ValidationError

logger = get_logger(__name__).bind(component="weight_repository")

_SELECT_COLUMNS = """
    poll_id, statement_id, weight, mode, components, computed_at,
    agree_count, disagree_count, pass_count
"""


def _row_to_weight(row: asyncpg.Record) -> StatementWeight:
    try:
        return StatementWeight(
            poll_id=row["poll_id"],
            statement_id=row["statement_id"],
            weight=row["weight"],
            components=row["components"],
            computed_at=row["computed_at"],
            agree_count=row["agree_count"],
            disagree_count=row["disagree_count"],
            pass_count=row["pass_count"],
        )
    except (ValueError, ValidationError) as e:
        raise DatabaseError(
            f"Unreadable cached weight: {e}",
            context={'poll_id': row["poll_id"], 'statement_id': row["statement_id"]},
        ) from e


class WeightRepository(BaseRepository):
    """Repository for cached statement weights."""

    async def get_weights_batch(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, StatementWeight]:
        """Get cached weights for specific statements.

        Args:
            poll_id: Poll ID
            statement_ids: Statement IDs to look up

        Returns:
            Dict of statement_id -> StatementWeight (uncached ids absent)
        """
        if not statement_ids:
            return {}

        rows = await self._fetch(
            f"""
            SELECT {_SELECT_COLUMNS}
            FROM statement_weights
            WHERE poll_id = $1 AND statement_id = ANY($2::text[])
            """,
            poll_id,
            list(statement_ids),
        )
        return {row["statement_id"]: _row_to_weight(row) for row in rows}

    async def get_weights_for_poll(self, poll_id: str) -> List[StatementWeight]:
        """Get all cached weights for a poll, heaviest first."""
        rows = await self._fetch(
            f"""
            SELECT {_SELECT_COLUMNS}
            FROM statement_weights
            WHERE poll_id = $1
            ORDER BY weight DESC, statement_id
            """,
            poll_id,
        )
        return [_row_to_weight(row) for row in rows]

    async def upsert_weights(self, weights: List[StatementWeight]) -> None:
        """Insert or replace weights.

        Conflicts on (poll_id, statement_id) overwrite every column, so two
        requests racing to fill the same miss both succeed.
        """
        if not weights:
            return

        await self._executemany(
            """
            INSERT INTO statement_weights
                (poll_id, statement_id, weight, mode, components, computed_at,
                 agree_count, disagree_count, pass_count)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ON CONFLICT (poll_id, statement_id) DO UPDATE SET
                weight = EXCLUDED.weight,
                mode = EXCLUDED.mode,
                components = EXCLUDED.components,
                computed_at = EXCLUDED.computed_at,
                agree_count = EXCLUDED.agree_count,
                disagree_count = EXCLUDED.disagree_count,
                pass_count = EXCLUDED.pass_count
            """,
            [
                (
                    w.poll_id,
                    w.statement_id,
                    w.weight,
                    w.mode,
                    w.components,
                    w.computed_at,
                    w.agree_count,
                    w.disagree_count,
                    w.pass_count,
                )
                for w in weights
            ],
        )

        logger.debug(
            "upserted statement weights",
            poll_id=weights[0].poll_id,
            count=len(weights),
        )

    async def delete_weights_for_poll(self, poll_id: str) -> int:
        """Invalidate (delete) all cached weights for a poll.

        Returns:
            Number of rows removed
        """
        result = await self._execute(
            "DELETE FROM statement_weights WHERE poll_id = $1",
            poll_id,
        )
        removed = self._parse_row_count(result)
        logger.info("deleted cached weights", poll_id=poll_id, removed=removed)
        return removed
