import logging
import random

import networkx as nx
import pytest

from ranked_tally.engine import (
    TallyState,
    pull_condorcet,
    pull_ranked_pairs,
    pull_unranked,
    tally,
)
from ranked_tally.errors import TallyInvariantError
from ranked_tally.lock import lock_majorities
from ranked_tally.majorities import sort_majorities
from ranked_tally.model import RankAllocator, Source, TallyOptions
from tests.conftest import make_votes


def summary(result):
    return [(r.candidate, r.rank, r.tie, r.phase, r.source) for r in result.rows]


class TestScenarios:
    def test_unanimous_order(self, unanimous):
        result = tally(unanimous)

        assert result.ranking == ["A", "B", "C"]
        assert [r.rank for r in result.rows] == [1, 2, 3]
        assert not result.has_ties
        assert not any(r.tie for r in result.rows)
        assert result.row("A").source is Source.CONDORCET_WINNER
        assert result.row("B").source is Source.CONDORCET_WINNER
        assert all(r.source is not Source.RANKED_PAIRS_WINNER for r in result.rows)
        assert result.rounds == []

    def test_unanimous_order_classic_loser(self, unanimous):
        result = tally(unanimous, TallyOptions(classic_loser=True))

        assert summary(result) == [
            ("A", 1, False, 1, Source.CONDORCET_WINNER),
            ("B", 2, False, 2, Source.RANKED_PAIRS_LOSER),
            ("C", 3, False, 1, Source.CONDORCET_LOSER),
        ]

    def test_condorcet_cycle(self, cycle):
        result = tally(cycle)

        assert sorted(r.rank for r in result.rows) == [1, 2, 3]
        assert not result.has_ties
        assert result.rows[0].source is Source.RANKED_PAIRS_WINNER
        assert result.rows[0].phase == 1
        assert not any(
            r.source in (Source.CONDORCET_WINNER, Source.CONDORCET_LOSER)
            for r in result.rows
        )

        first_round = result.rounds[0]
        assert len(first_round.locked) == 2
        assert len(first_round.unlocked) == 1
        assert first_round.priority_tie is False

    def test_never_ranked_candidate(self, never_ranked):
        result = tally(never_ranked)

        assert summary(result) == [
            ("A", 1, False, 2, Source.CONDORCET_WINNER),
            ("B", 2, False, 3, Source.RANKED_PAIRS_LOSER),
            ("C", 3, False, 1, Source.NO_RANKINGS),
        ]

    def test_exact_tie_locks_in_index_order(self, even_split):
        result = tally(even_split)

        assert summary(result) == [
            ("A", 1, False, 1, Source.RANKED_PAIRS_WINNER),
            ("B", 2, False, 2, Source.RANKED_PAIRS_LOSER),
        ]
        assert result.rounds[0].locked == [("A", "B", 0)]
        assert not result.has_ties

    def test_condorcet_loser_needs_a_tie(self, tied_loser):
        result = tally(tied_loser)

        assert summary(result) == [
            ("A", 1, False, 1, Source.CONDORCET_WINNER),
            ("C", 2, False, 2, Source.CONDORCET_WINNER),
            ("B", 3, False, 3, Source.RANKED_PAIRS_LOSER),
            ("D", 4, False, 1, Source.CONDORCET_LOSER),
        ]

    def test_tied_pair_after_condorcet_winners(self):
        # A and B beat everyone; C and D tie with each other.
        votes = make_votes("ABCD", ["ABCD", "ABDC"])
        result = tally(votes)

        assert summary(result) == [
            ("A", 1, False, 1, Source.CONDORCET_WINNER),
            ("B", 2, False, 2, Source.CONDORCET_WINNER),
            ("C", 3, False, 3, Source.RANKED_PAIRS_WINNER),
            ("D", 4, False, 4, Source.RANKED_PAIRS_LOSER),
        ]

    def test_tie_flag_starts_at_tied_phase(self):
        # D beats everyone; then A = B, both beating C.
        votes = make_votes("ABCD", ["DABC", "DBA"])
        result = tally(votes)

        assert summary(result) == [
            ("D", 1, False, 1, Source.CONDORCET_WINNER),
            ("A", 2, True, 2, Source.RANKED_PAIRS_WINNER),
            ("B", 3, True, 3, Source.RANKED_PAIRS_WINNER),
            ("C", 4, True, 4, Source.RANKED_PAIRS_LOSER),
        ]
        assert result.tie_phase == 2

    def test_loser_without_tie_needs_classic_rule(self, tied_leaders):
        result = tally(tied_leaders)
        assert summary(result) == [
            ("A", 1, True, 1, Source.RANKED_PAIRS_WINNER),
            ("B", 2, True, 2, Source.RANKED_PAIRS_WINNER),
            ("C", 3, True, 3, Source.RANKED_PAIRS_LOSER),
        ]
        assert result.priority_tie

        classic = tally(tied_leaders, TallyOptions(classic_loser=True))
        assert summary(classic) == [
            ("A", 1, False, 2, Source.RANKED_PAIRS_WINNER),
            ("B", 2, False, 3, Source.RANKED_PAIRS_LOSER),
            ("C", 3, False, 1, Source.CONDORCET_LOSER),
        ]

    def test_nobody_ranked(self):
        votes = make_votes("ABC", [""])
        result = tally(votes)

        assert [r.rank for r in result.rows] == [1, 1, 1]
        assert {r.source for r in result.rows} == {Source.NO_RANKINGS}

    def test_single_candidate(self):
        result = tally(make_votes("A", ["A"]))
        assert summary(result) == [("A", 1, False, 1, Source.RANKED_PAIRS_LOSER)]

    def test_same_input_same_output(self, cycle):
        assert summary(tally(cycle)) == summary(tally(cycle))


class TestStages:
    def test_unranked_pulled_before_anything_else(self, never_ranked):
        state = TallyState.start(never_ranked)
        assert pull_unranked(state) == 1

        c = state.candidates[2]
        assert (c.rank, c.phase, c.source) == (2, 1, Source.NO_RANKINGS)
        assert len(state.majorities) == 1
        assert state.phase == 2

    def test_condorcet_round_pulls_winner_and_loser(self, tied_loser):
        state = TallyState.start(tied_loser)
        assert pull_condorcet(state) == 2
        assert state.candidates[0].source is Source.CONDORCET_WINNER
        assert state.candidates[3].source is Source.CONDORCET_LOSER
        assert len(state.majorities) == 1

    def test_condorcet_round_finds_nobody_in_a_cycle(self, cycle):
        state = TallyState.start(cycle)
        assert pull_condorcet(state) == 0
        assert state.phase == 1
        assert len(state.majorities) == 3

    def test_ranked_pairs_round(self, cycle):
        state = TallyState.start(cycle)
        assert pull_ranked_pairs(state) == 1
        assert len(state.majorities) == 1
        assert len(state.rounds) == 1
        assert state.phase == 2

    def test_majority_count_is_checked(self, cycle):
        state = TallyState.start(cycle)
        state.majorities.pop()
        with pytest.raises(TallyInvariantError, match="expected 3"):
            state.check_majorities()

    def test_candidate_cannot_be_decided_twice(self, unanimous):
        state = TallyState.start(unanimous)
        state.decide(state.candidates[0], 0, Source.CONDORCET_WINNER)
        with pytest.raises(TallyInvariantError, match="already ranked"):
            state.decide(state.candidates[0], 1, Source.CONDORCET_LOSER)

    def test_decisions_are_logged(self, unanimous, caplog):
        with caplog.at_level(logging.INFO, logger="ranked_tally"):
            tally(unanimous)
        assert "Phase 1: A ranked 1 (CondorcetWinner)" in caplog.text


class TestRankAllocator:
    def test_counters_converge(self):
        allocator = RankAllocator(4)
        assert allocator.take_top() == 0
        assert allocator.take_bottom() == 3
        assert allocator.take_top(2) == 1
        assert allocator.remaining == 0

    def test_bottom_block(self):
        allocator = RankAllocator(5)
        assert allocator.take_bottom(2) == 3
        assert allocator.next_loser == 2

    def test_crossing_collapses_to_one_rank(self, caplog):
        allocator = RankAllocator(3)
        allocator.take_top()
        with caplog.at_level(logging.WARNING):
            assert allocator.take_bottom(3) == 1
        assert "would cross" in caplog.text
        assert allocator.remaining == 0


def random_ballots(seed, candidates="ABCDE", voters=7):
    rng = random.Random(seed)
    ballots = []
    for _ in range(voters):
        order = list(candidates)
        rng.shuffle(order)
        ballots.append(order[:rng.randint(0, len(order))])
    return make_votes(candidates, ballots)


@pytest.mark.parametrize("seed", range(25))
def test_invariants_hold_through_a_run(seed):
    votes = random_ballots(seed)
    n = votes.num_candidates
    state = TallyState.start(votes)
    state.check_majorities()
    pull_unranked(state)

    rounds = 0
    while pull_condorcet(state):
        rounds += 1
        assert all(m.strength >= 0 for m in state.majorities)
    assert rounds <= n

    while state.majorities:
        ordered, _ = sort_majorities(state.majorities)
        graph = lock_majorities(ordered).graph
        assert nx.is_directed_acyclic_graph(graph)
        pull_ranked_pairs(state)

    result = tally(votes)
    ranks = [r.rank for r in result.rows]
    assert ranks == sorted(ranks)
    for row in result.rows:
        assert 1 <= row.rank <= n
        # competition ranking: rank is one more than the number ranked above
        assert row.rank == 1 + sum(1 for other in result.rows if other.rank < row.rank)
        sharing = [r for r in result.rows if r.rank == row.rank]
        if len(sharing) > 1:
            assert len({(r.source, r.phase) for r in sharing}) == 1
            assert row.source in (Source.RANKED_PAIRS_WINNER, Source.NO_RANKINGS)

    assert summary(tally(votes)) == summary(result)
