"""
Ranking assembly and result output.

Turns a finished tally state into ordered rows, and writes them out as a
console table, a CSV file or an Excel workbook.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import pandas as pd

from ranked_tally.errors import TallyInvariantError
from ranked_tally.majorities import build_matchup_matrix
from ranked_tally.model import RoundRecord, Source

if TYPE_CHECKING:
    from ranked_tally.engine import TallyState

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["Candidate", "Rank", "Tie", "Phase", "Source"]


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class RankingRow:
    """One output line. ``rank`` is 1-based."""
    candidate: str
    rank: int
    tie: bool
    phase: int
    source: Source


@dataclass
class TallyResult:
    """Container for a finished tally."""
    rows: list[RankingRow]
    tie_phase: Optional[int]
    matchup_matrix: pd.DataFrame
    rounds: list[RoundRecord]
    num_voters: int

    @property
    def has_ties(self) -> bool:
        return self.tie_phase is not None

    @property
    def priority_tie(self) -> bool:
        return any(r.priority_tie for r in self.rounds)

    @property
    def ranking(self) -> list[str]:
        return [row.candidate for row in self.rows]

    @property
    def unlocked(self) -> list[tuple[int, str, str, int]]:
        return [
            (r.phase, winner, loser, margin)
            for r in self.rounds
            for winner, loser, margin in r.unlocked
        ]

    def row(self, candidate: str) -> RankingRow:
        key = candidate.casefold()
        for row in self.rows:
            if row.candidate.casefold() == key:
                return row
        raise KeyError(candidate)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                (r.candidate, r.rank, r.tie, r.phase, str(r.source))
                for r in self.rows
            ],
            columns=RESULT_COLUMNS,
        )


# =============================================================================
# Ranking Assembler
# =============================================================================

def assemble(state: "TallyState") -> TallyResult:
    """
    Finish a tally and order its candidates.

    The single candidate left undecided, if any, is ranked last by Ranked
    Pairs. Rows decided in or after the first tied phase are flagged.

    Raises:
        TallyInvariantError: If more than one candidate is still undecided
    """
    undecided = state.surviving()
    if len(undecided) > 1:
        raise TallyInvariantError(
            "tally finished with undecided candidates: "
            + ", ".join(c.name for c in undecided)
        )
    if undecided:
        state.decide(
            undecided[0], state.allocator.take_top(), Source.RANKED_PAIRS_LOSER
        )

    tie_phase = min((r.phase for r in state.rounds if r.is_tie), default=None)
    if tie_phase is not None:
        logger.warning(
            "Ranking is not unique from phase %d onward.", tie_phase
        )

    ordered = sorted(state.candidates, key=lambda c: c.rank)
    rows = [
        RankingRow(
            candidate=c.name,
            rank=c.rank + 1,
            tie=tie_phase is not None and c.phase >= tie_phase,
            phase=c.phase,
            source=c.source,
        )
        for c in ordered
    ]

    return TallyResult(
        rows=rows,
        tie_phase=tie_phase,
        matchup_matrix=build_matchup_matrix(state.votes),
        rounds=state.rounds,
        num_voters=state.votes.num_voters,
    )


# =============================================================================
# Output Generation
# =============================================================================

def format_rankings(result: TallyResult) -> str:
    """Render the ranking as a text table; tie-flagged ranks read ``~N``."""
    width = max((len(r.candidate) for r in result.rows), default=0)
    width = max(width, len("Candidate"))
    lines = [f"  {'Rank':5} {'Candidate':{width}}  Phase  Source"]
    for r in result.rows:
        rank_str = f"~{r.rank}" if r.tie else f"{r.rank}."
        lines.append(f"  {rank_str:5} {r.candidate:{width}}  {r.phase:5}  {r.source}")
    return "\n".join(lines)


def write_results(result: TallyResult, output_path) -> Path:
    """
    Save the results to ``.xlsx`` or ``.csv``.

    Workbook sheets:
    - Results: Final ranking
    - Matchups: Pairwise margin matrix
    - Unlocked Pairings: Pairings skipped because they closed a cycle
    - Notes: Any warnings

    Args:
        result: TallyResult to write
        output_path: Destination file

    Returns:
        The path written

    Raises:
        ValueError: If the suffix is neither .xlsx nor .csv
    """
    output_path = Path(output_path)
    suffix = output_path.suffix.lower()

    if suffix == ".csv":
        result.to_dataframe().to_csv(output_path, index=False)
    elif suffix == ".xlsx":
        with pd.ExcelWriter(output_path) as writer:
            result.to_dataframe().to_excel(writer, sheet_name="Results", index=False)
            result.matchup_matrix.to_excel(writer, sheet_name="Matchups")

            if result.unlocked:
                unlocked_df = pd.DataFrame(
                    result.unlocked,
                    columns=["Phase", "Winner", "Loser", "Margin"]
                )
                unlocked_df.to_excel(writer, sheet_name="Unlocked Pairings", index=False)

            notes = result_notes(result)
            if notes:
                pd.DataFrame(notes).to_excel(writer, sheet_name="Notes", index=False)
    else:
        raise ValueError(
            f"Unsupported output format '{output_path.suffix}', use .xlsx or .csv"
        )

    logger.info("Saved results to %s", output_path)
    return output_path


def result_notes(result: TallyResult) -> list[dict[str, str]]:
    notes = []
    if result.has_ties:
        notes.append({
            'Type': 'WARNING',
            'Message': f'Ranking is not unique from phase {result.tie_phase} onward'
        })
    if result.priority_tie:
        phases = ", ".join(str(r.phase) for r in result.rounds if r.priority_tie)
        notes.append({
            'Type': 'INFO',
            'Message': f'Lock priority left pairings unordered in phase {phases}'
        })
    return notes
