"""
Pairwise majorities and their lock priority.

A majority records, for one unordered pair of candidates, which of the two
more voters preferred and by how much. Ranked Pairs then needs the
majorities in priority order: strongest margin first, with equal margins
broken by looking at the race between the two losers.
"""

import itertools
import logging
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from ranked_tally.ballots import VoteMatrix
from ranked_tally.errors import TallyInvariantError

logger = logging.getLogger(__name__)


@dataclass
class Majority:
    """
    One pairwise race between two surviving candidates.

    ``winner`` and ``loser`` are candidate indices. After normalization
    ``strength`` (net voter margin) is never negative; a zero strength is a
    true tie, oriented with the lower candidate index as ``winner``.
    """
    winner: int
    loser: int
    strength: int
    locked: bool = False

    @property
    def is_tie(self) -> bool:
        return self.strength == 0

    @property
    def key(self) -> frozenset:
        return frozenset((self.winner, self.loser))

    def involves(self, candidates) -> bool:
        return self.winner in candidates or self.loser in candidates

    def describe(self, names) -> str:
        relation = "=" if self.is_tie else ">"
        return (
            f"{names[self.winner]} {relation} {names[self.loser]} "
            f"strength {self.strength}"
        )


# =============================================================================
# Majority Matrix Builder
# =============================================================================

def pairwise_margin(ranks_x: np.ndarray, ranks_y: np.ndarray) -> int:
    """
    Net number of voters preferring x over y.

    A voter prefers x if they ranked x better than y, or ranked x and left
    y unranked. Equal ranks and ballots ranking neither count for nobody.
    """
    prefers_x = (ranks_x > 0) & ((ranks_y == 0) | (ranks_x < ranks_y))
    prefers_y = (ranks_y > 0) & ((ranks_x == 0) | (ranks_y < ranks_x))
    return int(prefers_x.sum()) - int(prefers_y.sum())


def build_majorities(
    votes: VoteMatrix,
    candidates: Optional[Iterable[int]] = None
) -> list[Majority]:
    """
    Build one normalized majority per unordered pair of candidates.

    Args:
        votes: Validated vote matrix
        candidates: Candidate indices to pair up (default: all of them)

    Returns:
        List of majorities in pair order, each with ``strength >= 0``
    """
    if candidates is None:
        candidates = range(votes.num_candidates)

    majorities = []
    for x, y in itertools.combinations(sorted(candidates), 2):
        strength = pairwise_margin(votes.column(x), votes.column(y))
        if strength < 0:
            majorities.append(Majority(winner=y, loser=x, strength=-strength))
        else:
            majorities.append(Majority(winner=x, loser=y, strength=strength))

    ties = sum(1 for m in majorities if m.is_tie)
    if ties:
        logger.warning("%d ties were found.", ties)
    logger.debug(
        "Majorities:\n%s",
        "\n".join("\t" + m.describe(votes.candidates) for m in majorities)
    )
    return majorities


def build_matchup_matrix(votes: VoteMatrix) -> pd.DataFrame:
    """
    Build the signed pairwise margin table.

    Entry (i, j) is how many more voters preferred candidate i over
    candidate j; the diagonal is empty.
    """
    names = list(votes.candidates)
    matrix_data = []
    for i in range(len(names)):
        row = []
        for j in range(len(names)):
            if i == j:
                row.append(None)
            else:
                row.append(pairwise_margin(votes.column(i), votes.column(j)))
        matrix_data.append(row)

    return pd.DataFrame(matrix_data, index=names, columns=names)


# =============================================================================
# Majority Priority Sorter
# =============================================================================

def index_majorities(majorities: Iterable[Majority]) -> dict[frozenset, Majority]:
    return {m.key: m for m in majorities}


def compare_priority(
    first: Majority,
    second: Majority,
    lookup: dict[frozenset, Majority]
) -> int:
    """
    Three-way lock priority comparison.

    Stronger majorities come first. For equal strengths the race between
    the two losers decides: the majority whose loser won that race comes
    first. Majorities sharing a loser, or whose losers tied, compare equal.

    Args:
        first: Majority to compare
        second: Majority to compare against
        lookup: Surviving majorities keyed by candidate pair

    Returns:
        -1 if ``first`` locks first, 1 if ``second`` does, 0 if incomparable

    Raises:
        TallyInvariantError: If no majority exists between the two losers
    """
    if first.strength != second.strength:
        return -1 if first.strength > second.strength else 1

    if first.loser == second.loser:
        return 0

    between = lookup.get(frozenset((first.loser, second.loser)))
    if between is None:
        raise TallyInvariantError(
            f"no majority between losers {first.loser} and {second.loser} "
            f"while comparing {first} with {second}"
        )

    if between.is_tie:
        return 0
    return -1 if between.winner == first.loser else 1


def sort_majorities(majorities: list[Majority]) -> tuple[list[Majority], bool]:
    """
    Sort majorities into lock priority order.

    The sort is stable, so majorities that compare equal keep the order of
    the input list. Incomparable neighbours are detected afterwards by one
    pass over adjacent pairs.

    Returns:
        Tuple of (sorted_majorities, priority_tie)
    """
    lookup = index_majorities(majorities)
    ordered = sorted(
        majorities,
        key=cmp_to_key(lambda a, b: compare_priority(a, b, lookup))
    )

    priority_tie = any(
        compare_priority(a, b, lookup) == 0
        for a, b in zip(ordered, ordered[1:])
    )
    return ordered, priority_tie
