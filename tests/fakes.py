"""
In-memory stand-ins for the statement selection engine's boundaries

- InMemorySignalSource: polls, statements, classifications, votes
- FailingWeightStore: every call raises DatabaseError
- CountingCalculator: WeightCalculator that records every computation
- RaisingWeightingService / FixedWeightingService: ordering-side doubles
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Set, Tuple

from database.models import (
    ClusteringEligibility,
    Statement,
    StatementClassification,
    StatementWeight,
    ColdStartComponents,
)
from deliberation.weights import WeightCalculator
from exceptions import DatabaseError

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


def make_statement(
    statement_id: str,
    poll_id: str = "P1",
    age_days: float = 0.0,
    agree: int = 0,
    disagree: int = 0,
    passes: int = 0,
) -> Statement:
    return Statement(
        id=statement_id,
        poll_id=poll_id,
        created_at=NOW - timedelta(days=age_days),
        agree_count=agree,
        disagree_count=disagree,
        pass_count=passes,
        text=f"Statement {statement_id}",
    )


def make_statements(count: int, poll_id: str = "P1") -> List[Statement]:
    return [make_statement(f"s{i:02d}", poll_id) for i in range(count)]


class InMemorySignalSource:
    """SignalSource over plain dicts; mutate the fields directly in tests"""

    def __init__(self):
        self.eligibility: Dict[str, ClusteringEligibility] = {}
        self.statements: Dict[str, Dict[str, Statement]] = {}
        self.classifications: Dict[str, Dict[str, StatementClassification]] = {}
        self.votes: Set[Tuple[str, str]] = set()  # (user_id, statement_id)
        self.fail_statements = False
        self.yield_on_read = False  # lets concurrent callers interleave

    def add_poll(
        self,
        poll_id: str,
        participant_count: int = 0,
        status: str = "not_started",
        statements: Sequence[Statement] = (),
    ) -> None:
        self.eligibility[poll_id] = ClusteringEligibility(
            poll_id=poll_id, participant_count=participant_count, status=status
        )
        self.statements[poll_id] = {s.id: s for s in statements}
        self.classifications.setdefault(poll_id, {})

    def set_eligibility(self, poll_id: str, participant_count: int, status: str) -> None:
        self.eligibility[poll_id] = ClusteringEligibility(
            poll_id=poll_id, participant_count=participant_count, status=status
        )

    def classify(
        self,
        poll_id: str,
        statement_id: str,
        classification: str,
        group_agreements: Optional[Dict[int, float]] = None,
    ) -> None:
        self.classifications.setdefault(poll_id, {})[statement_id] = StatementClassification(
            poll_id=poll_id,
            statement_id=statement_id,
            classification=classification,
            group_agreements=group_agreements or {},
        )

    async def get_eligibility(self, poll_id: str) -> Optional[ClusteringEligibility]:
        return self.eligibility.get(poll_id)

    async def get_statements(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, Statement]:
        if self.yield_on_read:
            await asyncio.sleep(0)
        if self.fail_statements:
            raise DatabaseError("statements table unavailable")
        known = self.statements.get(poll_id, {})
        return {sid: known[sid] for sid in statement_ids if sid in known}

    async def get_classifications(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, StatementClassification]:
        known = self.classifications.get(poll_id, {})
        return {sid: known[sid] for sid in statement_ids if sid in known}

    async def get_unvoted_statements(self, poll_id: str, user_id: str) -> List[Statement]:
        candidates = [
            s for s in self.statements.get(poll_id, {}).values()
            if (user_id, s.id) not in self.votes
        ]
        return sorted(candidates, key=lambda s: (s.created_at, s.id))


class FailingWeightStore:
    """WeightStore whose reads and/or writes raise DatabaseError"""

    def __init__(self, fail_reads: bool = True, fail_writes: bool = True):
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self.upserts: List[StatementWeight] = []

    async def get_weights_batch(self, poll_id, statement_ids):
        if self.fail_reads:
            raise DatabaseError("weight cache unavailable")
        return {}

    async def upsert_weights(self, weights):
        if self.fail_writes:
            raise DatabaseError("weight cache unavailable")
        self.upserts.extend(weights)

    async def delete_weights_for_poll(self, poll_id):
        raise DatabaseError("weight cache unavailable")

    async def get_weights_for_poll(self, poll_id):
        raise DatabaseError("weight cache unavailable")


class CountingCalculator(WeightCalculator):
    """WeightCalculator that records which statements it computed"""

    def __init__(self, **kwargs):
        kwargs.setdefault("clock", fixed_clock)
        super().__init__(**kwargs)
        self.computed: List[Tuple[str, str]] = []  # (mode, statement_id)

    def cold_start_weight(self, statement, avg_votes, now=None):
        self.computed.append(("cold_start", statement.id))
        return super().cold_start_weight(statement, avg_votes, now)

    def clustering_weight(self, statement, classification, now=None):
        self.computed.append(("clustering", statement.id))
        return super().clustering_weight(statement, classification, now)


class RaisingWeightingService:
    """Weighting service whose every call fails with an unexpected error"""

    def __init__(self):
        self.calls = 0

    async def get_statement_weights(self, poll_id, statement_ids):
        self.calls += 1
        raise RuntimeError("weighting backend exploded")


class FixedWeightingService:
    """Weighting service returning preset weights (0.5 when unset)"""

    def __init__(self, weights: Dict[str, float]):
        self.weights = weights
        self.calls = 0

    async def get_statement_weights(self, poll_id, statement_ids):
        self.calls += 1
        return [
            StatementWeight(
                poll_id=poll_id,
                statement_id=sid,
                weight=self.weights.get(sid, 0.5),
                components=ColdStartComponents(
                    vote_count_boost=1.0, recency_boost=1.0, pass_rate_penalty=1.0
                ),
                computed_at=NOW,
            )
            for sid in statement_ids
        ]
