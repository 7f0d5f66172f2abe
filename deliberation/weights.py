"""Statement weight calculation

Computes a statement's relevance weight under one of two modes:

Cold start (poll too young for clustering):
    weight = vote_count_boost * recency_boost * pass_rate_penalty

Clustering (clustering run completed):
    weight = predictiveness * consensus_potential * recency_boost * pass_rate_penalty

Every component is positive and at most 1.0 under the default policy, and
the product is clamped to [policy.min_weight, 1.0], so a weight is never
zero (zero would drop the statement from weighted sampling for good).

Coefficients live in ScoringPolicy and are meant to be tuned; nothing
downstream depends on their exact values, only on the (0, 1] range and the
mode-tagged component breakdown.
"""

import math
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from config import config
from database.models import (
    ClusteringComponents,
    ColdStartComponents,
    Statement,
    StatementClassification,
    StatementWeight,
)

CONSENSUS_LABELS = ("positive_consensus", "negative_consensus")

# Largest possible population variance of rates in [0, 1] (half the groups at 0, half at 1)
MAX_AGREEMENT_VARIANCE = 0.25


class ScoringPolicy(BaseModel):
    """Tunable coefficients for the weight formulas"""
    model_config = ConfigDict(frozen=True)

    # Recency
    fresh_hours: float = Field(default=24.0, ge=0)
    recency_half_life_days: float = Field(default=config.RECENCY_HALF_LIFE_DAYS, gt=0)
    min_recency_boost: float = Field(default=0.1, gt=0, le=1)

    # Pass rate
    max_pass_penalty: float = Field(default=0.9, ge=0, lt=1)
    min_pass_rate_penalty: float = Field(default=0.1, gt=0, le=1)
    unvoted_pass_rate_penalty: float = Field(default=1.0, gt=0, le=1)

    # Vote count (cold start)
    min_vote_count_boost: float = Field(default=0.25, gt=0, le=1)

    # Clustering signals
    strong_opinion_threshold: float = Field(default=0.6, gt=0.5, le=1)
    bridge_consensus_potential: float = Field(default=0.7, gt=0, le=1)
    min_signal: float = Field(default=0.1, gt=0, le=1)
    neutral_signal: float = Field(default=0.5, gt=0, le=1)

    min_weight: float = Field(default=0.01, gt=0, le=1)


DEFAULT_POLICY = ScoringPolicy()


def _utc(ts: datetime) -> datetime:
    # Naive timestamps from the voting layer are stored in UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def clamp_weight(raw: float, policy: ScoringPolicy = DEFAULT_POLICY) -> float:
    """Clamp a raw product into [min_weight, 1.0]; NaN maps to min_weight"""
    if math.isnan(raw):
        return policy.min_weight
    return max(policy.min_weight, min(1.0, raw))


def calculate_recency_boost(
    created_at: datetime,
    now: datetime,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> float:
    """Full boost inside the fresh window, then exponential half-life decay.

    Examples (defaults):
        - 12 hours old -> 1.0
        - 8 days old   -> ~0.45
        - 90 days old  -> 0.1 (floor)
    """
    age_hours = (_utc(now) - _utc(created_at)).total_seconds() / 3600.0
    if age_hours < policy.fresh_hours:
        return 1.0

    age_days = age_hours / 24.0
    boost = 0.5 ** (age_days / policy.recency_half_life_days)
    return max(boost, policy.min_recency_boost)


def calculate_pass_rate_penalty(
    agree: int,
    disagree: int,
    passes: int,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> float:
    """Linear discount on the share of "unsure" votes.

    0% pass -> 1.0, 100% pass -> 1 - max_pass_penalty (floored).
    """
    total = agree + disagree + passes
    if total == 0:
        return policy.unvoted_pass_rate_penalty

    pass_rate = passes / total
    return max(1.0 - pass_rate * policy.max_pass_penalty, policy.min_pass_rate_penalty)


def calculate_vote_count_boost(
    vote_count: int,
    avg_votes: float,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> float:
    """Inverse exposure boost: 1 / (1 + votes / avg_votes), floored.

    Unvoted -> 1.0, average -> 0.5, three times average -> 0.25.
    """
    if avg_votes <= 0:
        return 1.0
    ratio = vote_count / avg_votes
    return max(policy.min_vote_count_boost, min(1.0, 1.0 / (1.0 + ratio)))


def calculate_predictiveness(
    group_agreements: Iterable[float],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> float:
    """Normalized variance of per-group agreement rates.

    Statements that split the opinion groups predict group membership best.
    No group data -> neutral signal.
    """
    rates = np.fromiter(group_agreements, dtype=float)
    if rates.size == 0:
        return policy.neutral_signal

    variance = float(np.var(rates))
    predictiveness = min(variance / MAX_AGREEMENT_VARIANCE, 1.0)
    return max(predictiveness, policy.min_signal)


def calculate_consensus_potential(
    group_agreements: Iterable[float],
    classification: str,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> float:
    """Likelihood the statement becomes a cross-group consensus point.

    consensus labels -> 1.0, bridge -> policy value, otherwise the share of
    groups that hold a strong majority view either way.
    """
    if classification in CONSENSUS_LABELS:
        return 1.0
    if classification == "bridge":
        return policy.bridge_consensus_potential

    rates = np.fromiter(group_agreements, dtype=float)
    if rates.size == 0:
        return policy.neutral_signal

    high = policy.strong_opinion_threshold
    strong = np.count_nonzero((rates > high) | (rates < 1.0 - high))
    return max(strong / rates.size, policy.min_signal)


def average_votes(statements: Sequence[Statement]) -> float:
    if not statements:
        return 0.0
    return sum(s.vote_count for s in statements) / len(statements)


class WeightCalculator:
    """Builds StatementWeight records for one mode at a time"""

    def __init__(
        self,
        policy: Optional[ScoringPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.policy = policy or DEFAULT_POLICY
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self.clock()

    def cold_start_weight(
        self,
        statement: Statement,
        avg_votes: float,
        now: Optional[datetime] = None,
    ) -> StatementWeight:
        now = now or self.now()
        components = ColdStartComponents(
            vote_count_boost=calculate_vote_count_boost(
                statement.vote_count, avg_votes, self.policy
            ),
            recency_boost=calculate_recency_boost(statement.created_at, now, self.policy),
            pass_rate_penalty=calculate_pass_rate_penalty(
                statement.agree_count,
                statement.disagree_count,
                statement.pass_count,
                self.policy,
            ),
        )
        raw = (
            components.vote_count_boost
            * components.recency_boost
            * components.pass_rate_penalty
        )
        return self._record(statement, clamp_weight(raw, self.policy), components, now)

    def clustering_weight(
        self,
        statement: Statement,
        classification: Optional[StatementClassification],
        now: Optional[datetime] = None,
    ) -> StatementWeight:
        """Clustering-mode weight; an unclassified statement gets neutral signals"""
        now = now or self.now()

        if classification is None:
            predictiveness = self.policy.neutral_signal
            consensus_potential = self.policy.neutral_signal
            label = None
        else:
            agreements = list(classification.group_agreements.values())
            predictiveness = calculate_predictiveness(agreements, self.policy)
            consensus_potential = calculate_consensus_potential(
                agreements, classification.classification, self.policy
            )
            label = classification.classification

        components = ClusteringComponents(
            predictiveness=predictiveness,
            consensus_potential=consensus_potential,
            recency_boost=calculate_recency_boost(statement.created_at, now, self.policy),
            pass_rate_penalty=calculate_pass_rate_penalty(
                statement.agree_count,
                statement.disagree_count,
                statement.pass_count,
                self.policy,
            ),
            classification=label,
        )
        raw = (
            components.predictiveness
            * components.consensus_potential
            * components.recency_boost
            * components.pass_rate_penalty
        )
        return self._record(statement, clamp_weight(raw, self.policy), components, now)

    @staticmethod
    def _record(statement: Statement, weight: float, components, now: datetime) -> StatementWeight:
        return StatementWeight(
            poll_id=statement.poll_id,
            statement_id=statement.id,
            weight=weight,
            components=components,
            computed_at=now,
            agree_count=statement.agree_count,
            disagree_count=statement.disagree_count,
            pass_count=statement.pass_count,
        )
