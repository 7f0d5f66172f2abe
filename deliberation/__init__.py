"""Deliberation module - statement selection for polls

Decides which statements a voter sees and in what order:
- Per-statement relevance weights (cold start vs clustering mode)
- Durable weight cache with explicit invalidation
- Reproducible per-user, per-batch ordering (sequential, random, weighted)

The opinion clustering itself runs out-of-band; this package only reads
its output (participant count, status, classifications).
"""

from deliberation.batching import StatementBatchService
from deliberation.mode_selector import ModeSelector, select_mode
from deliberation.ordering import OrderingContext, StatementOrderingService
from deliberation.weight_store import InMemoryWeightStore, WeightStore
from deliberation.weighting_service import StatementWeightingService
from deliberation.weights import ScoringPolicy, WeightCalculator

__all__ = [
    "InMemoryWeightStore",
    "ModeSelector",
    "OrderingContext",
    "ScoringPolicy",
    "StatementBatchService",
    "StatementOrderingService",
    "StatementWeightingService",
    "WeightCalculator",
    "WeightStore",
    "select_mode",
]
