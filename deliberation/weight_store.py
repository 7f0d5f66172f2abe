"""Weight Store - key/value cache of statement weights

Keyed by (poll_id, statement_id). No TTL: entries live until the poll's
weights are invalidated. The weighting service only talks to the
WeightStore protocol, so tests run against InMemoryWeightStore and
production runs against database.repositories_async.WeightRepository.

Return type conventions follow the repository layer:
    get_weights_batch(poll_id, ids) -> Dict[str, StatementWeight]
        Missing ids are absent from the dict (not errors).
"""

from typing import Dict, List, Protocol, Sequence, Tuple

from config import get_logger
from database.models import StatementWeight

logger = get_logger(__name__).bind(component="weight_store")


class WeightStore(Protocol):
    async def get_weights_batch(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, StatementWeight]: ...

    async def upsert_weights(self, weights: List[StatementWeight]) -> None: ...

    async def delete_weights_for_poll(self, poll_id: str) -> int: ...

    async def get_weights_for_poll(self, poll_id: str) -> List[StatementWeight]: ...


class InMemoryWeightStore:
    """Process-local WeightStore

    Every method completes without awaiting, so concurrent asyncio tasks
    never observe a half-applied upsert or delete. Racing writers for the
    same key resolve as last write wins.
    """

    def __init__(self):
        self._weights: Dict[Tuple[str, str], StatementWeight] = {}

    async def get_weights_batch(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, StatementWeight]:
        found = {}
        for statement_id in statement_ids:
            cached = self._weights.get((poll_id, statement_id))
            if cached is not None:
                found[statement_id] = cached
        return found

    async def upsert_weights(self, weights: List[StatementWeight]) -> None:
        for w in weights:
            self._weights[(w.poll_id, w.statement_id)] = w

    async def delete_weights_for_poll(self, poll_id: str) -> int:
        keys = [key for key in self._weights if key[0] == poll_id]
        for key in keys:
            del self._weights[key]
        logger.debug("deleted cached weights", poll_id=poll_id, count=len(keys))
        return len(keys)

    async def get_weights_for_poll(self, poll_id: str) -> List[StatementWeight]:
        return [w for (pid, _), w in self._weights.items() if pid == poll_id]

    def __len__(self) -> int:
        return len(self._weights)
