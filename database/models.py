"""
Database Models for civicpulse

Pydantic dataclasses with runtime validation for core entities, and
pydantic models for the JSONB weight component payloads.
"""


from dataclasses import field
from typing import Annotated, Dict, Literal, Optional, Union
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field
from pydantic.dataclasses import dataclass


ClusteringStatus = Literal["not_started", "running", "completed"]
ClassificationType = Literal[
    "positive_consensus", "negative_consensus", "divisive", "bridge", "normal"
]
WeightingMode = Literal["cold_start", "clustering"]


# --- JSONB Pydantic Models (weight component breakdown) ---


class ColdStartComponents(BaseModel):
    """Components of a weight computed before clustering is available"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: Literal["cold_start"] = "cold_start"
    vote_count_boost: float  # Favors under-exposed statements
    recency_boost: float
    pass_rate_penalty: float


class ClusteringComponents(BaseModel):
    """Components of a weight computed from opinion group signals"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: Literal["clustering"] = "clustering"
    predictiveness: float  # Spread of per-group agreement
    consensus_potential: float
    recency_boost: float
    pass_rate_penalty: float
    classification: Optional[ClassificationType] = None  # None when unclassified


class NeutralComponents(BaseModel):
    """Placeholder breakdown for fallback weights"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: Literal["unknown"] = "unknown"
    reason: str


WeightComponents = Annotated[
    Union[ColdStartComponents, ClusteringComponents, NeutralComponents],
    Field(discriminator="mode"),
]


# --- Domain Dataclasses (with runtime validation) ---


@dataclass
class Statement:
    """Approved, votable statement of a poll

    Vote aggregates are read from the voting layer, never written here.
    """

    id: str
    poll_id: str
    created_at: datetime
    agree_count: int = 0
    disagree_count: int = 0
    pass_count: int = 0
    pinned: bool = False
    text: Optional[str] = None

    def __post_init__(self):
        for field_name in ("agree_count", "disagree_count", "pass_count"):
            value = getattr(self, field_name)
            if value < 0:
                from exceptions import ValidationError
                raise ValidationError(
                    f"Invalid {field_name}: {value}. Must be non-negative",
                    field=field_name,
                    value=value,
                )

    @property
    def vote_count(self) -> int:
        return self.agree_count + self.disagree_count + self.pass_count


@dataclass
class ClusteringEligibility:
    """Per-poll maturity signal published by the clustering pipeline"""

    poll_id: str
    participant_count: int
    status: ClusteringStatus = "not_started"

    def __post_init__(self):
        if self.participant_count < 0:
            from exceptions import ValidationError
            raise ValidationError(
                f"Invalid participant_count: {self.participant_count}",
                field="participant_count",
                value=self.participant_count,
            )


@dataclass
class StatementClassification:
    """Clustering pipeline output for one statement

    group_agreements maps opinion group id -> share of the group that agreed.
    """

    poll_id: str
    statement_id: str
    classification: ClassificationType
    group_agreements: Dict[int, float] = field(default_factory=dict)

    def __post_init__(self):
        for group_id, rate in self.group_agreements.items():
            if not 0.0 <= rate <= 1.0:
                from exceptions import ValidationError
                raise ValidationError(
                    f"Invalid agreement rate for group {group_id}: {rate}",
                    field="group_agreements",
                    value=rate,
                )


@dataclass
class StatementWeight:
    """Cached relevance weight for one statement of one poll

    The components variant tells which mode produced the weight. Vote counts
    are a snapshot taken when the weight was computed.
    """

    poll_id: str
    statement_id: str
    weight: float
    components: WeightComponents
    computed_at: datetime
    agree_count: int = 0
    disagree_count: int = 0
    pass_count: int = 0

    def __post_init__(self):
        # Zero would exclude the statement from weighted sampling permanently
        if not 0.0 < self.weight <= 1.0:
            from exceptions import ValidationError
            raise ValidationError(
                f"Invalid weight: {self.weight}. Must be in (0, 1]",
                field="weight",
                value=self.weight,
            )

    @property
    def mode(self) -> str:
        return self.components.mode

    @property
    def is_fallback(self) -> bool:
        return self.components.mode == "unknown"

    @classmethod
    def neutral(
        cls,
        poll_id: str,
        statement_id: str,
        reason: str,
        weight: float = 0.5,
    ) -> "StatementWeight":
        """Fallback weight used when a real weight cannot be produced"""
        return cls(
            poll_id=poll_id,
            statement_id=statement_id,
            weight=weight,
            components=NeutralComponents(reason=reason),
            computed_at=datetime.now(timezone.utc),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "statement_id": self.statement_id,
            "poll_id": self.poll_id,
            "weight": self.weight,
            "mode": self.mode,
            "components": self.components.model_dump(),
            "computed_at": self.computed_at.isoformat(),
            "agree_count": self.agree_count,
            "disagree_count": self.disagree_count,
            "pass_count": self.pass_count,
        }
