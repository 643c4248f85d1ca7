from pathlib import Path
import sys

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from ranked_tally.ballots import VoteMatrix


def make_votes(candidates, ballots):
    """Ballot-order matrix from strings like ``"ACB"`` or lists of names."""
    return VoteMatrix.from_ballots(list(candidates), [list(b) for b in ballots])


@pytest.fixture
def unanimous():
    """Scenario A: one voter ranks A > B > C."""
    return make_votes("ABC", ["ABC"])


@pytest.fixture
def cycle():
    """
    Scenario B: a perfect Condorcet cycle.

    A beats B, B beats C and C beats A, each 2-1.
    """
    return make_votes("ABC", ["ABC", "BCA", "CAB"])


@pytest.fixture
def never_ranked():
    """Scenario C: one voter ranks A > B and nobody ranks C."""
    return make_votes("ABC", ["AB"])


@pytest.fixture
def even_split():
    """Two voters with opposite ballots: A and B are exactly tied."""
    return make_votes("AB", ["AB", "BA"])


@pytest.fixture
def tied_leaders():
    """
    A and B tie with each other and both beat C 2-0.

    C is never party to a tie, and A > C and B > C cannot be ordered by
    lock priority because they share a loser.
    """
    return make_votes("ABC", ["ABC", "BA"])


@pytest.fixture
def tied_loser():
    """
    A beats everyone; D loses to A and B and ties with C; C beats B.

    Margins: A>B 4, A>C 4, A>D 2, C>B 2, B>D 2, C=D.
    """
    return make_votes("ABCD", ["ACBD", "ACBD", "ABDC", "DACB"])


@pytest.fixture
def write_csv(tmp_path):
    def _write(text, name="ballots.csv"):
        path = tmp_path / name
        path.write_text(text)
        return path
    return _write
