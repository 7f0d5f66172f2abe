"""Async PollSignalRepository - read-only upstream signals

Implements deliberation.signals.SignalSource over tables owned by other
parts of the product:
- statements / votes: statement submission and voting flows
- poll_clustering / statement_classifications: clustering pipeline

Nothing here writes.
"""

from typing import Dict, List, Optional, Sequence

import asyncpg

from config import get_logger
from database.models import ClusteringEligibility, Statement, StatementClassification
from database.repositories_async.base import BaseRepository
from exceptions import ValidationError

logger = get_logger(__name__).bind(component="poll_signal_repository")

_STATEMENT_WITH_VOTES = """
    SELECT s.id, s.poll_id, s.text, s.pinned, s.created_at,
           COUNT(v.user_id) FILTER (WHERE v.value = 1) AS agree_count,
           COUNT(v.user_id) FILTER (WHERE v.value = -1) AS disagree_count,
           COUNT(v.user_id) FILTER (WHERE v.value = 0) AS pass_count
    FROM statements s
    LEFT JOIN votes v ON v.statement_id = s.id
"""


def _row_to_statement(row: asyncpg.Record) -> Statement:
    return Statement(
        id=row["id"],
        poll_id=row["poll_id"],
        created_at=row["created_at"],
        agree_count=row["agree_count"],
        disagree_count=row["disagree_count"],
        pass_count=row["pass_count"],
        pinned=row["pinned"],
        text=row["text"],
    )


class PollSignalRepository(BaseRepository):
    """Repository for poll eligibility, statements and classifications."""

    async def get_eligibility(self, poll_id: str) -> Optional[ClusteringEligibility]:
        """Get participant count and clustering status for a poll.

        Polls the clustering pipeline has never seen report their live
        participant count with status not_started.

        Returns:
            ClusteringEligibility, or None if the poll does not exist
        """
        row = await self._fetchrow(
            """
            SELECT p.id AS poll_id,
                   COALESCE(pc.status, 'not_started') AS status,
                   (SELECT COUNT(DISTINCT v.user_id)
                    FROM votes v
                    JOIN statements s ON s.id = v.statement_id
                    WHERE s.poll_id = p.id AND s.approved) AS participant_count
            FROM polls p
            LEFT JOIN poll_clustering pc ON pc.poll_id = p.id
            WHERE p.id = $1
            """,
            poll_id,
        )

        if not row:
            return None

        return ClusteringEligibility(
            poll_id=row["poll_id"],
            participant_count=row["participant_count"],
            status=row["status"],
        )

    async def get_statements(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, Statement]:
        """Get approved statements with vote aggregates.

        Returns:
            Dict of statement_id -> Statement (unknown or unapproved ids absent)
        """
        if not statement_ids:
            return {}

        rows = await self._fetch(
            _STATEMENT_WITH_VOTES
            + """
            WHERE s.poll_id = $1 AND s.id = ANY($2::text[]) AND s.approved
            GROUP BY s.id
            """,
            poll_id,
            list(statement_ids),
        )
        return {row["id"]: _row_to_statement(row) for row in rows}

    async def get_unvoted_statements(self, poll_id: str, user_id: str) -> List[Statement]:
        """Get approved statements the user has not voted on, oldest first."""
        rows = await self._fetch(
            _STATEMENT_WITH_VOTES
            + """
            WHERE s.poll_id = $1 AND s.approved
              AND NOT EXISTS (
                  SELECT 1 FROM votes mine
                  WHERE mine.statement_id = s.id AND mine.user_id = $2
              )
            GROUP BY s.id
            ORDER BY s.created_at ASC, s.id ASC
            """,
            poll_id,
            user_id,
        )
        return [_row_to_statement(row) for row in rows]

    async def get_classifications(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, StatementClassification]:
        """Get clustering classifications for statements.

        Statements the pipeline has not classified, or whose row is
        malformed, are absent; callers treat that as a neutral signal.
        """
        if not statement_ids:
            return {}

        rows = await self._fetch(
            """
            SELECT poll_id, statement_id, classification_type, group_agreements
            FROM statement_classifications
            WHERE poll_id = $1 AND statement_id = ANY($2::text[])
            """,
            poll_id,
            list(statement_ids),
        )

        classifications = {}
        for row in rows:
            try:
                classifications[row["statement_id"]] = StatementClassification(
                    poll_id=row["poll_id"],
                    statement_id=row["statement_id"],
                    classification=row["classification_type"],
                    group_agreements=row["group_agreements"] or {},
                )
            except (ValueError, ValidationError) as e:
                logger.warning(
                    "skipping malformed classification",
                    poll_id=poll_id,
                    statement_id=row["statement_id"],
                    error=str(e),
                )

        return classifications
