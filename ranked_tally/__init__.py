"""
Ranked-ballot tallying: Condorcet winners and losers first, then the
Tideman Ranked Pairs method for whatever they leave unresolved.
"""

from ranked_tally.ballots import VoteMatrix, load_ballot_csv
from ranked_tally.engine import tally
from ranked_tally.errors import BallotError, TallyError, TallyInvariantError
from ranked_tally.model import Source, TallyOptions
from ranked_tally.results import RankingRow, TallyResult, format_rankings, write_results

__all__ = [
    "BallotError",
    "RankingRow",
    "Source",
    "TallyError",
    "TallyInvariantError",
    "TallyOptions",
    "TallyResult",
    "VoteMatrix",
    "format_rankings",
    "load_ballot_csv",
    "tally",
    "write_results",
]
