"""
Condorcet-first, Ranked Pairs fallback tally engine.

The engine peels candidates off a shrinking set of pairwise majorities:

1. Candidates nobody ranked go to the bottom, tied, before anything else.
2. Condorcet rounds repeatedly take a unique undefeated candidate off the
   top and a unique winless one off the bottom.
3. Ranked Pairs rounds sort, lock and read the undefeated candidates off
   the locked graph until no majorities are left.
4. The results module assembles the final ranking.

Every candidate decided in a round keeps that round's number as its phase.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ranked_tally.ballots import VoteMatrix
from ranked_tally.errors import TallyInvariantError
from ranked_tally.lock import lock_majorities
from ranked_tally.majorities import Majority, build_majorities, sort_majorities
from ranked_tally.model import (
    Candidate,
    RankAllocator,
    RoundRecord,
    Source,
    TallyOptions,
)
from ranked_tally.results import TallyResult, assemble

logger = logging.getLogger(__name__)


# =============================================================================
# Tally State
# =============================================================================

@dataclass
class TallyState:
    """Working set owned by a single tally run."""
    votes: VoteMatrix
    candidates: list[Candidate]
    majorities: list[Majority]
    allocator: RankAllocator
    phase: int = 1
    rounds: list[RoundRecord] = field(default_factory=list)

    @classmethod
    def start(cls, votes: VoteMatrix) -> "TallyState":
        candidates = [
            Candidate(name=name, index=i) for i, name in enumerate(votes.candidates)
        ]
        return cls(
            votes=votes,
            candidates=candidates,
            majorities=build_majorities(votes),
            allocator=RankAllocator(len(candidates)),
        )

    @property
    def names(self) -> tuple[str, ...]:
        return self.votes.candidates

    def surviving(self) -> list[Candidate]:
        return [c for c in self.candidates if not c.decided]

    def decide(self, candidate: Candidate, rank: int, source: Source):
        if candidate.decided:
            raise TallyInvariantError(
                f"candidate {candidate.name} was already ranked "
                f"{candidate.rank + 1} by {candidate.source}"
            )
        candidate.rank = rank
        candidate.phase = self.phase
        candidate.source = source
        logger.info(
            "Phase %d: %s ranked %d (%s)",
            self.phase, candidate.name, rank + 1, source
        )

    def retire(self, indices):
        """Drop every majority involving one of ``indices``."""
        indices = set(indices)
        before = len(self.majorities)
        self.majorities = [m for m in self.majorities if not m.involves(indices)]
        logger.debug(
            "Pulled %d pairings for %s",
            before - len(self.majorities),
            ", ".join(self.names[i] for i in sorted(indices))
        )
        self.check_majorities()

    def check_majorities(self):
        """Verify one majority exists per pair of surviving candidates."""
        k = len(self.surviving())
        expected = k * (k - 1) // 2
        if len(self.majorities) != expected:
            raise TallyInvariantError(
                f"{len(self.majorities)} majorities for {k} surviving "
                f"candidates, expected {expected}"
            )
        if any(m.strength < 0 for m in self.majorities):
            raise TallyInvariantError("majority with negative strength survived")


# =============================================================================
# Extraction stages
# =============================================================================

def pull_unranked(state: TallyState) -> int:
    """
    Send candidates nobody ranked to the bottom of the ranking, tied.

    Returns:
        Number of candidates pulled
    """
    unranked = state.votes.unranked_candidates()
    if not unranked:
        return 0

    rank = state.allocator.take_bottom(len(unranked))
    for i in unranked:
        state.decide(state.candidates[i], rank, Source.NO_RANKINGS)
    state.retire(unranked)
    state.phase += 1
    return len(unranked)


def mark_pairings(state: TallyState):
    """Set the wins_pair / loses_pair / ties flags from current majorities."""
    for c in state.candidates:
        c.reset_flags()

    for m in state.majorities:
        if m.is_tie:
            state.candidates[m.winner].ties = True
            state.candidates[m.loser].ties = True
            continue
        state.candidates[m.winner].wins_pair = True
        state.candidates[m.loser].loses_pair = True


def pull_condorcet(state: TallyState, options: Optional[TallyOptions] = None) -> int:
    """
    Take out a Condorcet winner and/or loser, if there is a unique one.

    The winner must win some race, lose none and tie none. The loser must
    lose some race and win none; unless ``options.classic_loser`` is set it
    must also be party to a tied race.

    Returns:
        Number of candidates pulled (0, 1 or 2); 0 ends the Condorcet loop
    """
    options = options or TallyOptions()
    mark_pairings(state)
    surviving = state.surviving()

    winners = [
        c for c in surviving
        if c.wins_pair and not c.loses_pair and not c.ties
    ]
    losers = [
        c for c in surviving
        if c.loses_pair and not c.wins_pair and (c.ties or options.classic_loser)
    ]

    pulled = []
    if len(winners) == 1:
        state.decide(winners[0], state.allocator.take_top(), Source.CONDORCET_WINNER)
        pulled.append(winners[0].index)
    if len(losers) == 1:
        state.decide(losers[0], state.allocator.take_bottom(), Source.CONDORCET_LOSER)
        pulled.append(losers[0].index)

    if pulled:
        state.retire(pulled)
        state.phase += 1
    return len(pulled)


def pull_ranked_pairs(state: TallyState) -> int:
    """
    Run one sort/lock/extract round of Ranked Pairs.

    Every candidate left undefeated by the locked graph shares the next
    rank from the top.

    Returns:
        Number of candidates pulled

    Raises:
        TallyInvariantError: If the locked graph leaves nobody undefeated
    """
    ordered, priority_tie = sort_majorities(state.majorities)
    result = lock_majorities(ordered)
    winners = result.undefeated()
    if not winners:
        raise TallyInvariantError(
            "locked graph has no undefeated candidate among "
            + ", ".join(state.names[n] for n in sorted(result.graph.nodes))
        )

    names = state.names
    record = RoundRecord(
        phase=state.phase,
        winners=[names[i] for i in winners],
        locked=[(names[m.winner], names[m.loser], m.strength) for m in result.locked],
        unlocked=[(names[m.winner], names[m.loser], m.strength) for m in result.unlocked],
        priority_tie=priority_tie,
    )
    state.rounds.append(record)
    if priority_tie:
        logger.warning(
            "Phase %d: lock priority could not order some pairings.", state.phase
        )

    rank = state.allocator.take_top(len(winners))
    for i in winners:
        state.decide(state.candidates[i], rank, Source.RANKED_PAIRS_WINNER)
    logger.info("Ranked pairs yielded %d winners", len(winners))

    state.retire(winners)
    state.phase += 1
    return len(winners)


# =============================================================================
# Tally
# =============================================================================

def tally(votes: VoteMatrix, options: Optional[TallyOptions] = None) -> TallyResult:
    """
    Rank every candidate in ``votes``.

    Args:
        votes: Validated vote matrix
        options: Tally settings (default: TallyOptions())

    Returns:
        TallyResult with one row per candidate, best first

    Raises:
        TallyInvariantError: If the engine reaches an impossible state; no
            partial ranking is returned
    """
    options = options or TallyOptions()
    state = TallyState.start(votes)
    state.check_majorities()

    pull_unranked(state)

    rounds = 0
    while pull_condorcet(state, options):
        rounds += 1
        if rounds > votes.num_candidates:
            raise TallyInvariantError(
                f"Condorcet extraction ran {rounds} rounds "
                f"for {votes.num_candidates} candidates"
            )

    while state.majorities:
        pull_ranked_pairs(state)

    return assemble(state)
