"""Candidates, decision sources and rank bookkeeping for one tally."""

import enum
import logging
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


class Source(enum.Enum):
    """How a candidate's rank was decided."""
    CONDORCET_WINNER = "CondorcetWinner"
    CONDORCET_LOSER = "CondorcetLoser"
    RANKED_PAIRS_WINNER = "RankedPairsWinner"
    RANKED_PAIRS_LOSER = "RankedPairsLoser"
    NO_RANKINGS = "NoRankings"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class TallyOptions:
    """
    Tally settings, read once before a run.

    ``classic_loser`` drops the requirement that a Condorcet loser be party
    to at least one tied majority.
    """
    classic_loser: bool = False


@dataclass
class Candidate:
    name: str
    index: int
    rank: Optional[int] = None
    phase: Optional[int] = None
    source: Optional[Source] = None
    # Per-round flags set by the Condorcet extractor.
    wins_pair: bool = False
    loses_pair: bool = False
    ties: bool = False

    @property
    def decided(self) -> bool:
        return self.source is not None

    def reset_flags(self):
        self.wins_pair = False
        self.loses_pair = False
        self.ties = False


class RankAllocator:
    """
    Hands out 0-based ranks from both ends of the ranking.

    Winners are numbered down from the top, losers up from the bottom. The
    two counters never cross: a request that would cross them gives every
    remaining candidate the first open rank.
    """

    def __init__(self, size: int):
        self.next_winner = 0
        self.next_loser = size - 1

    @property
    def remaining(self) -> int:
        return self.next_loser - self.next_winner + 1

    def take_top(self, count: int = 1) -> int:
        if count > self.remaining:
            return self._collapse(count)
        rank = self.next_winner
        self.next_winner += count
        return rank

    def take_bottom(self, count: int = 1) -> int:
        if count > self.remaining:
            return self._collapse(count)
        self.next_loser -= count
        return self.next_loser + 1

    def _collapse(self, count):
        """Give every remaining candidate the first open rank."""
        rank = self.next_winner
        logger.warning(
            "Rank counters would cross (%d requested, %d open); "
            "remaining candidates share rank %d.",
            count, self.remaining, rank + 1
        )
        self.next_winner = self.next_loser + 1
        return rank


@dataclass
class RoundRecord:
    """What one Ranked Pairs sort/lock/extract round did, by candidate name."""
    phase: int
    winners: list[str]
    locked: list[tuple[str, str, int]] = field(default_factory=list)
    unlocked: list[tuple[str, str, int]] = field(default_factory=list)
    priority_tie: bool = False

    @property
    def is_tie(self) -> bool:
        return len(self.winners) > 1 or self.priority_tie
