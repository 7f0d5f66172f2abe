"""Statement batches for the voting flow

The voting flow shows statements in batches. For each batch it needs the
user's unvoted statements, ordered for this (user, poll, batch), cut to the
batch size. Ordering always runs over the full unvoted set so that weighted
sampling sees every candidate.
"""

from typing import List, Optional

from config import config, get_logger
from database.models import Statement
from deliberation.ordering import OrderingContext, StatementOrderingService
from deliberation.signals import SignalSource

logger = get_logger(__name__).bind(component="batch_service")


class StatementBatchService:
    def __init__(
        self,
        signals: SignalSource,
        ordering: StatementOrderingService,
        batch_size: Optional[int] = None,
    ):
        self.signals = signals
        self.ordering = ordering
        self.batch_size = batch_size or config.STATEMENT_BATCH_SIZE

    async def get_batch(
        self,
        user_id: str,
        poll_id: str,
        batch_number: int,
        order_mode: Optional[str] = None,
        random_seed: Optional[str] = None,
    ) -> List[Statement]:
        """Next batch of statements for a voter.

        Args:
            user_id: Voter
            poll_id: Poll
            batch_number: 1-based batch counter kept by the voting flow
            order_mode: Poll's ordering strategy (config default when None)
            random_seed: Poll's seed override, if any

        Returns:
            Up to batch_size statements, empty when the user has voted on all
        """
        candidates = await self.signals.get_unvoted_statements(poll_id, user_id)
        if not candidates:
            logger.debug("no unvoted statements", poll_id=poll_id, user_id=user_id)
            return []

        context = OrderingContext(
            user_id=user_id,
            poll_id=poll_id,
            batch_number=batch_number,
            order_mode=order_mode or config.DEFAULT_ORDER_MODE,
            random_seed=random_seed,
        )
        ordered = await self.ordering.order_statements(candidates, context)
        return ordered[: self.batch_size]
