"""Selection metrics - interface plus Prometheus implementation

The weighting and ordering services accept any SelectionMetrics, so they
run in tests and scripts with NullMetrics and in production with
PrometheusSelectionMetrics.

Usage:
    metrics = PrometheusSelectionMetrics()
    metrics.weight_cache_lookups.labels(result="hit").inc(12)
    with metrics.weight_compute_duration.labels(mode="clustering").time():
        ...
"""

from contextlib import contextmanager
from typing import Any, ContextManager, Optional, Protocol

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram


class LabeledCounter(Protocol):
    def labels(self, **kwargs: Any) -> "LabeledCounter": ...
    def inc(self, amount: float = 1) -> None: ...


class LabeledHistogram(Protocol):
    def labels(self, **kwargs: Any) -> "LabeledHistogram": ...
    def observe(self, value: float) -> None: ...
    def time(self) -> ContextManager: ...


class SelectionMetrics(Protocol):
    """Metrics used by:
    - deliberation/weighting_service.py - cache lookups, fallbacks, compute time
    - deliberation/ordering.py - orderings per strategy, strategy downgrades
    """
    weight_cache_lookups: LabeledCounter
    weight_fallbacks: LabeledCounter
    weight_invalidations: LabeledCounter
    weight_compute_duration: LabeledHistogram
    orderings: LabeledCounter
    ordering_fallbacks: LabeledCounter


class _NullCounter:
    def labels(self, **kwargs: Any) -> "_NullCounter":
        return self

    def inc(self, amount: float = 1) -> None:
        pass


class _NullHistogram:
    def labels(self, **kwargs: Any) -> "_NullHistogram":
        return self

    def observe(self, value: float) -> None:
        pass

    @contextmanager
    def time(self):
        yield


class NullMetrics:
    """No-op metrics for testing or standalone use"""

    def __init__(self):
        self.weight_cache_lookups = _NullCounter()
        self.weight_fallbacks = _NullCounter()
        self.weight_invalidations = _NullCounter()
        self.weight_compute_duration = _NullHistogram()
        self.orderings = _NullCounter()
        self.ordering_fallbacks = _NullCounter()


class PrometheusSelectionMetrics:
    """Prometheus-backed selection metrics

    Pass a private CollectorRegistry when more than one instance lives in
    a process (tests); the default registry rejects duplicate names.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        registry = registry if registry is not None else REGISTRY

        self.weight_cache_lookups = Counter(
            'civicpulse_weight_cache_lookups_total',
            'Statement weight cache lookups',
            ['result'],  # hit/miss
            registry=registry,
        )

        self.weight_fallbacks = Counter(
            'civicpulse_weight_fallbacks_total',
            'Statements that received the neutral fallback weight',
            ['reason'],
            registry=registry,
        )

        self.weight_invalidations = Counter(
            'civicpulse_weight_invalidations_total',
            'Poll weight cache invalidations',
            registry=registry,
        )

        self.weight_compute_duration = Histogram(
            'civicpulse_weight_compute_seconds',
            'Time to compute missing weights for one request',
            ['mode'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5],
            registry=registry,
        )

        self.orderings = Counter(
            'civicpulse_orderings_total',
            'Statement orderings produced',
            ['strategy'],
            registry=registry,
        )

        self.ordering_fallbacks = Counter(
            'civicpulse_ordering_fallbacks_total',
            'Weighted orderings downgraded to random',
            registry=registry,
        )
