"""Statement Ordering Service

Orders a statement set for one (user, poll, batch) using the poll's
configured strategy:

- sequential: keep the given (creation-time) order
- random: seeded Fisher-Yates shuffle
- weighted: seeded weighted sampling without replacement (exponential keys)

Unknown modes behave exactly like sequential.

Seeding: seed = sha256("{seed_base}-{batch_number}") with seed_base
"{user_id}-{random_seed}" when the poll sets a seed override, else
"{user_id}-{poll_id}". The same request always yields the same order; a new
batch number or another user yields a different one.

The output is always a permutation of the input, whatever upstream fails.
"""

from typing import List, Optional, Protocol, Sequence

from pydantic.dataclasses import dataclass

from config import config, get_logger
from database.models import Statement
from deliberation.metrics import NullMetrics, SelectionMetrics
from deliberation.seeded_random import SeededRandom, seeded_shuffle, string_to_seed
from deliberation.weighting_service import StatementWeightingService

logger = get_logger(__name__).bind(component="ordering_service")


@dataclass
class OrderingContext:
    """Per-call ordering request, never persisted"""
    user_id: str
    poll_id: str
    batch_number: int
    order_mode: str = "sequential"
    random_seed: Optional[str] = None  # Poll-level override, replaces poll_id in the seed


def derive_seed(context: OrderingContext) -> int:
    """Deterministic 64-bit seed for one (user, poll, batch) request"""
    if context.random_seed:
        seed_base = f"{context.user_id}-{context.random_seed}"
    else:
        seed_base = f"{context.user_id}-{context.poll_id}"
    return string_to_seed(f"{seed_base}-{context.batch_number}")


class OrderingStrategy(Protocol):
    name: str

    async def order(
        self, statements: List[Statement], context: OrderingContext
    ) -> List[Statement]: ...


class SequentialStrategy:
    """Keep the caller's order (statements arrive sorted by created_at)"""

    name = "sequential"

    async def order(
        self, statements: List[Statement], context: OrderingContext
    ) -> List[Statement]:
        return list(statements)


class RandomStrategy:
    """Seeded shuffle: same user + poll + batch = same order, no writes"""

    name = "random"

    async def order(
        self, statements: List[Statement], context: OrderingContext
    ) -> List[Statement]:
        return seeded_shuffle(statements, derive_seed(context))


class WeightedStrategy:
    """Weighted sampling without replacement

    Each statement gets key = -ln(U) / weight with U drawn in input order
    from one seeded generator; ascending keys give the order. Heavier
    statements tend to surface first, yet every permutation stays possible.

    If fetching weights raises, this call degrades to the random strategy.
    """

    name = "weighted"

    def __init__(
        self,
        weighting_service: Optional[StatementWeightingService],
        fallback: Optional[RandomStrategy] = None,
        metrics: Optional[SelectionMetrics] = None,
    ):
        self.weighting_service = weighting_service
        self.fallback = fallback or RandomStrategy()
        self.metrics = metrics or NullMetrics()

    async def order(
        self, statements: List[Statement], context: OrderingContext
    ) -> List[Statement]:
        if len(statements) <= 1:
            return list(statements)

        try:
            if self.weighting_service is None:
                raise RuntimeError("weighted ordering requires a weighting service")
            weights = await self.weighting_service.get_statement_weights(
                context.poll_id, [s.id for s in statements]
            )
        except Exception as e:
            logger.error(
                "weight lookup failed, falling back to random order",
                poll_id=context.poll_id,
                user_id=context.user_id,
                batch_number=context.batch_number,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.metrics.ordering_fallbacks.inc()
            return await self.fallback.order(statements, context)

        weight_by_id = {w.statement_id: w.weight for w in weights}
        return self._sample(statements, weight_by_id, derive_seed(context))

    @staticmethod
    def _sample(
        statements: Sequence[Statement], weight_by_id: dict, seed: int
    ) -> List[Statement]:
        rng = SeededRandom(seed)
        keyed = []
        for index, statement in enumerate(statements):
            weight = weight_by_id.get(statement.id, config.WEIGHT_FALLBACK)
            if not weight > 0:  # also rejects NaN
                weight = config.WEIGHT_FALLBACK
            keyed.append((rng.exponential() / weight, index, statement))

        keyed.sort(key=lambda entry: (entry[0], entry[1]))
        return [statement for _, _, statement in keyed]


class StatementOrderingService:
    """Selects the configured strategy and applies it"""

    def __init__(
        self,
        weighting_service: Optional[StatementWeightingService] = None,
        metrics: Optional[SelectionMetrics] = None,
    ):
        self.metrics = metrics or NullMetrics()
        self._random = RandomStrategy()
        self._strategies = {
            "sequential": SequentialStrategy(),
            "random": self._random,
            "weighted": WeightedStrategy(weighting_service, self._random, self.metrics),
        }

    def get_strategy(self, order_mode: Optional[str]) -> OrderingStrategy:
        strategy = self._strategies.get(order_mode or "sequential")
        if strategy is None:
            logger.warning("unknown order mode, defaulting to sequential", order_mode=order_mode)
            return self._strategies["sequential"]
        return strategy

    async def order_statements(
        self, statements: Sequence[Statement], context: OrderingContext
    ) -> List[Statement]:
        """Order statements using the configured strategy

        Args:
            statements: Statements to order (the full candidate set, oldest first)
            context: User, poll, batch and strategy for this request

        Returns:
            A permutation of the input
        """
        strategy = self.get_strategy(context.order_mode)
        ordered = await strategy.order(list(statements), context)
        self.metrics.orderings.labels(strategy=strategy.name).inc()

        logger.debug(
            "ordered statements",
            poll_id=context.poll_id,
            user_id=context.user_id,
            batch_number=context.batch_number,
            strategy=strategy.name,
            count=len(ordered),
        )
        return ordered
