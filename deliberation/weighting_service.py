"""Statement Weighting Service

Resolves weights for a batch of statements:
1. Look up cached weights, split hits from misses
2. For misses only: resolve the poll's mode once, compute, persist
3. Return one weight per requested id, in request order

Failure policy: civicpulse errors (unknown poll, storage failures, a
statement the poll does not have) never escape get_statement_weights.
Each affected statement gets the neutral fallback weight instead, and its
siblings in the same batch are unaffected. Fallback weights are not cached,
so the next request retries. Anything outside the CivicPulseError family is
a bug and propagates; the ordering service handles that at its own layer.

Cache invalidation is explicit: the clustering pipeline calls
invalidate_weights(poll_id) after every (re)computation, and the statement
approval workflow calls it when a new statement joins the poll.
"""

import time
from typing import Dict, List, Optional, Sequence

from config import config, get_logger
from database.models import StatementWeight, WeightingMode
from deliberation.metrics import NullMetrics, SelectionMetrics
from deliberation.mode_selector import ModeSelector
from deliberation.signals import SignalSource
from deliberation.weight_store import WeightStore
from deliberation.weights import WeightCalculator, average_votes
from exceptions import (
    CivicPulseError,
    PollNotFoundError,
    StatementNotFoundError,
    WeightComputationError,
)

logger = get_logger(__name__).bind(component="weighting_service")


class StatementWeightingService:
    """Cache-backed statement weights with per-statement fallback"""

    def __init__(
        self,
        store: WeightStore,
        signals: SignalSource,
        mode_selector: Optional[ModeSelector] = None,
        calculator: Optional[WeightCalculator] = None,
        metrics: Optional[SelectionMetrics] = None,
        fallback_weight: Optional[float] = None,
    ):
        self.store = store
        self.signals = signals
        self.mode_selector = mode_selector or ModeSelector(signals)
        self.calculator = calculator or WeightCalculator()
        self.metrics = metrics or NullMetrics()
        self.fallback_weight = (
            fallback_weight if fallback_weight is not None else config.WEIGHT_FALLBACK
        )

    async def get_statement_weights(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> List[StatementWeight]:
        """Get or calculate weights for statements in a poll.

        Args:
            poll_id: Poll ID
            statement_ids: Statement IDs to weight (typically the user's unvoted set)

        Returns:
            One StatementWeight per input id, in input order. Repeated ids
            repeat the same record.
        """
        if not statement_ids:
            return []

        unique_ids = list(dict.fromkeys(statement_ids))

        try:
            cached = await self.store.get_weights_batch(poll_id, unique_ids)
        except CivicPulseError as e:
            logger.warning(
                "weight cache lookup failed, using fallback weights",
                poll_id=poll_id,
                count=len(unique_ids),
                error=str(e),
            )
            resolved = self._fallbacks(poll_id, unique_ids, "storage_error")
            return [resolved[sid] for sid in statement_ids]

        missing = [sid for sid in unique_ids if sid not in cached]
        self.metrics.weight_cache_lookups.labels(result="hit").inc(len(cached))
        self.metrics.weight_cache_lookups.labels(result="miss").inc(len(missing))

        resolved: Dict[str, StatementWeight] = dict(cached)
        if missing:
            resolved.update(await self._resolve_missing(poll_id, missing))

        return [resolved[sid] for sid in statement_ids]

    async def invalidate_weights(self, poll_id: str) -> None:
        """Delete all cached weights for a poll.

        The next get_statement_weights call recomputes under whatever mode
        and signals are current. Storage errors propagate (DatabaseError):
        the caller must learn that stale weights are still in place.
        """
        try:
            removed = await self.store.delete_weights_for_poll(poll_id)
        except CivicPulseError as e:
            logger.error("weight invalidation failed", poll_id=poll_id, error=str(e))
            raise
        self.metrics.weight_invalidations.inc()
        logger.info("invalidated statement weights", poll_id=poll_id, removed=removed)

    async def get_poll_weights(self, poll_id: str) -> List[StatementWeight]:
        """All cached weights for a poll (diagnostics)"""
        return await self.store.get_weights_for_poll(poll_id)

    async def export_poll_weights(self, poll_id: str) -> List[dict]:
        """Cached weights as JSON-ready dicts, heaviest first"""
        weights = await self.get_poll_weights(poll_id)
        weights.sort(key=lambda w: (-w.weight, w.statement_id))
        return [w.to_dict() for w in weights]

    # -------------------------------------------------------------------------
    # Miss resolution
    # -------------------------------------------------------------------------

    async def _resolve_missing(
        self, poll_id: str, missing: List[str]
    ) -> Dict[str, StatementWeight]:
        try:
            mode = await self.mode_selector.resolve_mode(poll_id)
        except PollNotFoundError as e:
            logger.warning("unknown poll, using fallback weights", poll_id=poll_id, error=str(e))
            return self._fallbacks(poll_id, missing, "poll_not_found")
        except CivicPulseError as e:
            logger.warning(
                "mode resolution failed, using fallback weights",
                poll_id=poll_id,
                error=str(e),
            )
            return self._fallbacks(poll_id, missing, "signal_unavailable")

        started = time.perf_counter()
        try:
            computed, failed = await self._compute(poll_id, missing, mode)
        except CivicPulseError as e:
            logger.warning(
                "weight signals unavailable, using fallback weights",
                poll_id=poll_id,
                mode=mode,
                count=len(missing),
                error=str(e),
            )
            return self._fallbacks(poll_id, missing, "signal_unavailable")
        self.metrics.weight_compute_duration.labels(mode=mode).observe(
            time.perf_counter() - started
        )

        if computed:
            try:
                await self.store.upsert_weights(list(computed.values()))
            except CivicPulseError as e:
                logger.warning(
                    "failed to persist weights, using fallback weights",
                    poll_id=poll_id,
                    count=len(computed),
                    error=str(e),
                )
                return {
                    **self._fallbacks(poll_id, list(computed), "storage_error"),
                    **failed,
                }

        logger.info(
            "computed statement weights",
            poll_id=poll_id,
            mode=mode,
            computed=len(computed),
            fallback=len(failed),
        )
        return {**computed, **failed}

    async def _compute(
        self, poll_id: str, missing: List[str], mode: WeightingMode
    ) -> tuple[Dict[str, StatementWeight], Dict[str, StatementWeight]]:
        """Compute weights for missing ids.

        Returns:
            Tuple of (computed weights, per-statement fallbacks)
        """
        statements = await self.signals.get_statements(poll_id, missing)
        classifications = {}
        if mode == "clustering":
            classifications = await self.signals.get_classifications(poll_id, missing)

        now = self.calculator.now()
        avg_votes = average_votes(list(statements.values()))

        computed: Dict[str, StatementWeight] = {}
        failed: Dict[str, StatementWeight] = {}

        for sid in missing:
            statement = statements.get(sid)
            if statement is None:
                error = StatementNotFoundError(poll_id, sid)
                logger.warning("statement not found, using fallback weight", error=str(error))
                failed[sid] = self._fallback(poll_id, sid, "statement_not_found")
                continue

            try:
                if mode == "clustering":
                    classification = classifications.get(sid)
                    if classification is None:
                        logger.debug(
                            "statement not classified, using neutral signals",
                            poll_id=poll_id,
                            statement_id=sid,
                        )
                    weight = self.calculator.clustering_weight(statement, classification, now)
                else:
                    weight = self.calculator.cold_start_weight(statement, avg_votes, now)
            except (CivicPulseError, ValueError) as e:
                error = WeightComputationError(
                    "Weight computation failed",
                    poll_id=poll_id,
                    statement_id=sid,
                    original_error=e,
                )
                logger.warning("weight computation failed, using fallback weight", error=str(error))
                failed[sid] = self._fallback(poll_id, sid, "computation_error")
                continue

            computed[sid] = weight

        return computed, failed

    # -------------------------------------------------------------------------
    # Fallbacks
    # -------------------------------------------------------------------------

    def _fallback(self, poll_id: str, statement_id: str, reason: str) -> StatementWeight:
        self.metrics.weight_fallbacks.labels(reason=reason).inc()
        return StatementWeight.neutral(
            poll_id, statement_id, reason=reason, weight=self.fallback_weight
        )

    def _fallbacks(
        self, poll_id: str, statement_ids: List[str], reason: str
    ) -> Dict[str, StatementWeight]:
        return {sid: self._fallback(poll_id, sid, reason) for sid in statement_ids}
