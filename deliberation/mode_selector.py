"""Mode Selector - cold start vs clustering

A poll is weighted in clustering mode only once it has enough distinct
voters AND the external clustering run has completed. Anything else,
including a mature poll whose clustering is still running, stays in cold
start. The decision is never cached: every cache-miss resolution asks again,
so a poll moves to clustering (or picks up fresh signals after an
invalidation) without a restart.
"""

from typing import Optional

from config import config, get_logger
from database.models import ClusteringEligibility, WeightingMode
from deliberation.signals import SignalSource
from exceptions import PollNotFoundError

logger = get_logger(__name__).bind(component="mode_selector")


def select_mode(
    eligibility: ClusteringEligibility,
    min_participants: int = config.CLUSTERING_MIN_PARTICIPANTS,
) -> WeightingMode:
    """Pick the weighting mode for a poll.

    Examples (min_participants=20):
        - 19 participants, completed -> cold_start
        - 25 participants, completed -> clustering
        - 25 participants, running   -> cold_start
    """
    if eligibility.participant_count < min_participants:
        return "cold_start"
    if eligibility.status != "completed":
        return "cold_start"
    return "clustering"


class ModeSelector:
    def __init__(
        self,
        signals: SignalSource,
        min_participants: Optional[int] = None,
    ):
        self.signals = signals
        self.min_participants = (
            min_participants
            if min_participants is not None
            else config.CLUSTERING_MIN_PARTICIPANTS
        )

    async def resolve_mode(self, poll_id: str) -> WeightingMode:
        """Resolve the current mode for a poll.

        Raises:
            PollNotFoundError: No eligibility record exists for the poll
        """
        eligibility = await self.signals.get_eligibility(poll_id)
        if eligibility is None:
            raise PollNotFoundError(poll_id)

        mode = select_mode(eligibility, self.min_participants)

        if mode == "cold_start" and eligibility.participant_count >= self.min_participants:
            logger.info(
                "clustering not ready, staying in cold start",
                poll_id=poll_id,
                participants=eligibility.participant_count,
                status=eligibility.status,
            )
        else:
            logger.debug(
                "resolved weighting mode",
                poll_id=poll_id,
                mode=mode,
                participants=eligibility.participant_count,
            )

        return mode
