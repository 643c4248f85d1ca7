"""
The Ranked Pairs lock step.

Majorities are taken in priority order and committed as directed
winner -> loser arcs unless the arc would close a preference cycle.
"""

import logging
from dataclasses import dataclass, field

import networkx as nx

from ranked_tally.majorities import Majority

logger = logging.getLogger(__name__)


@dataclass
class LockResult:
    """Outcome of one lock pass."""
    graph: nx.DiGraph
    locked: list[Majority] = field(default_factory=list)
    unlocked: list[Majority] = field(default_factory=list)

    def undefeated(self) -> list[int]:
        """Candidates with no incoming locked arc, by index."""
        return sorted(n for n in self.graph.nodes if self.graph.in_degree(n) == 0)


def would_create_cycle(graph: nx.DiGraph, winner: int, loser: int) -> bool:
    """
    Check if locking winner -> loser would create a cycle.

    A cycle would be created if there's already a path from loser to winner.
    """
    return nx.has_path(graph, loser, winner)


def lock_majorities(ordered: list[Majority]) -> LockResult:
    """
    Lock every majority that doesn't contradict a higher-priority one.

    Locks from earlier rounds are discarded first, so the pass always
    starts from an empty graph over the candidates the majorities mention.
    Tied majorities lock in the orientation they were built with.

    Args:
        ordered: Majorities in lock priority order

    Returns:
        LockResult holding the locked graph and the partition of majorities
    """
    graph = nx.DiGraph()
    for m in ordered:
        graph.add_nodes_from((m.winner, m.loser))

    result = LockResult(graph=graph)
    for m in ordered:
        m.locked = False
        if would_create_cycle(graph, m.winner, m.loser):
            result.unlocked.append(m)
        else:
            m.locked = True
            graph.add_edge(m.winner, m.loser, strength=m.strength)
            result.locked.append(m)

    logger.info(
        "%d pairings were locked, %d were not locked.",
        len(result.locked), len(result.unlocked)
    )
    return result
