"""Signal Source Protocol - read-only view of upstream poll data

The clustering pipeline and the voting layer own this data. The selection
engine only reads it:
- eligibility: participant count + clustering status per poll
- statements: approved statements with their vote aggregates
- classifications: per-statement labels and per-group agreement rates

Implemented for production by
database.repositories_async.polls.PollSignalRepository.
"""

from typing import Dict, List, Optional, Protocol, Sequence

from database.models import ClusteringEligibility, Statement, StatementClassification


class SignalSource(Protocol):
    async def get_eligibility(self, poll_id: str) -> Optional[ClusteringEligibility]:
        """None means the poll is unknown"""
        ...

    async def get_statements(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, Statement]: ...

    async def get_classifications(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, StatementClassification]: ...

    async def get_unvoted_statements(self, poll_id: str, user_id: str) -> List[Statement]:
        """Approved statements the user has not voted on, oldest first"""
        ...
