"""
Ballot loading and validation.

Ballots arrive as a CSV file whose first column lists the candidates, one
per row, and whose remaining columns hold one voter each. Two encodings
are understood:

- ballot-order mode: row *i* of a voter column names that voter's *i*-th
  choice. Voters need not rank every candidate; anyone left out is tied
  for last on that ballot.
- numeric mode: the cell on a candidate's row holds the rank that voter
  gave the candidate (1 = best). Blank cells mean unranked, and equal
  ranks are allowed.

Either way the result is a :class:`VoteMatrix`: a voters x candidates table
of integers where 0 means "not ranked". Everything is validated here so the
tally engine never has to look at a malformed matrix.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from ranked_tally.errors import BallotError

logger = logging.getLogger(__name__)

HEADER_MARKER = "candidates"


# =============================================================================
# Vote Matrix
# =============================================================================

@dataclass(frozen=True, eq=False)
class VoteMatrix:
    """
    Validated rank matrix: one row per voter, one column per candidate.

    ``ranks.iat[v, c]`` is the rank voter ``v`` gave candidate ``c``,
    1 being best and 0 meaning the voter did not rank that candidate.
    Treat the frame as read-only; the engine never modifies it.
    """
    candidates: tuple[str, ...]
    ranks: pd.DataFrame

    @property
    def num_candidates(self) -> int:
        return len(self.candidates)

    @property
    def num_voters(self) -> int:
        return len(self.ranks.index)

    @property
    def voters(self) -> list[str]:
        return [str(v) for v in self.ranks.index]

    def column(self, index: int) -> np.ndarray:
        """Ranks every voter gave candidate ``index``."""
        return self.ranks.iloc[:, index].to_numpy()

    def unranked_candidates(self) -> list[int]:
        """Indices of candidates no voter ranked at all."""
        ranked = (self.ranks.to_numpy() > 0).any(axis=0)
        return [i for i in range(self.num_candidates) if not ranked[i]]

    @classmethod
    def from_ranks(
        cls,
        candidates: Sequence[str],
        ranks: Sequence[Sequence[int]],
        voters: Optional[Sequence[str]] = None
    ) -> "VoteMatrix":
        """
        Build a matrix from explicit per-candidate ranks (numeric mode).

        Args:
            candidates: Candidate names
            ranks: One sequence per voter, aligned with ``candidates``;
                0 means unranked, otherwise a rank in [1, len(candidates)]
            voters: Optional voter labels

        Raises:
            BallotError: If any name or rank is invalid
        """
        candidates = [str(c).strip() for c in candidates]
        voters = _voter_labels(voters, len(ranks))
        errors = _candidate_errors(candidates)

        rows = []
        for voter, row in zip(voters, ranks):
            if len(row) != len(candidates):
                errors.append(
                    f"voter {voter} gave {len(row)} ranks for "
                    f"{len(candidates)} candidates"
                )
                continue
            checked = []
            for candidate, value in zip(candidates, row):
                rank, problem = _parse_rank(value, len(candidates))
                if problem:
                    errors.append(f"voter {voter}, candidate {candidate}: {problem}")
                checked.append(rank)
            rows.append(checked)

        if errors:
            raise BallotError(errors)
        return cls._build(candidates, rows, voters)

    @classmethod
    def from_ballots(
        cls,
        candidates: Sequence[str],
        ballots: Sequence[Sequence[str]],
        voters: Optional[Sequence[str]] = None
    ) -> "VoteMatrix":
        """
        Build a matrix from ordered ballots (ballot-order mode).

        Each ballot lists candidate names best first. Names are matched
        case-insensitively.

        Raises:
            BallotError: On unknown names or a candidate ranked twice
        """
        candidates = [str(c).strip() for c in candidates]
        voters = _voter_labels(voters, len(ballots))
        errors = _candidate_errors(candidates)
        lookup = {name.casefold(): i for i, name in enumerate(candidates)}

        rows = []
        for voter, ballot in zip(voters, ballots):
            row, problems = _ballot_to_ranks(lookup, candidates, ballot, voter)
            errors.extend(problems)
            rows.append(row)

        if errors:
            raise BallotError(errors)
        return cls._build(candidates, rows, voters)

    @classmethod
    def _build(cls, candidates, rows, voters) -> "VoteMatrix":
        data = np.array(rows, dtype=int).reshape(len(rows), len(candidates))
        frame = pd.DataFrame(
            data,
            index=pd.Index(voters, name="voter"),
            columns=pd.Index(candidates, name="candidate"),
        )
        return cls(candidates=tuple(candidates), ranks=frame)


# =============================================================================
# Validation helpers
# =============================================================================

def _voter_labels(voters, count):
    if voters is None:
        return [f"voter {i + 1}" for i in range(count)]
    labels = [str(v).strip() or f"voter {i + 1}" for i, v in enumerate(voters)]
    if len(labels) != count:
        raise BallotError(f"{len(labels)} voter labels given for {count} voters")
    return labels


def _candidate_errors(candidates: list[str]) -> list[str]:
    errors = []
    if not candidates:
        errors.append("no candidates found")
    seen = {}
    for i, name in enumerate(candidates):
        if not name:
            errors.append(f"candidate {i + 1} has a blank name")
            continue
        key = name.casefold()
        if key in seen:
            errors.append(
                f"candidate {name} is listed more than once "
                f"(rows {seen[key] + 1} and {i + 1})"
            )
        else:
            seen[key] = i
    return errors


def _ballot_to_ranks(lookup, candidates, ballot, voter):
    row = [0] * len(candidates)
    errors = []
    for position, name in enumerate(ballot):
        index = lookup.get(str(name).strip().casefold())
        if index is None:
            errors.append(f"voter {voter} ranked non-existent candidate {name}")
            continue
        if row[index]:
            errors.append(
                f"voter {voter} ranked candidate {candidates[index]} more than once"
            )
            continue
        row[index] = position + 1
    return row, errors


def _parse_rank(value, num_candidates):
    """Return ``(rank, problem)``; blank values are rank 0."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0, None
    if isinstance(value, float) and np.isnan(value):
        return 0, None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0, f"rank '{value}' is not an integer"
    if not number.is_integer():
        return 0, f"rank '{value}' is not an integer"
    rank = int(number)
    if rank == 0:
        return 0, None
    if not 1 <= rank <= num_candidates:
        return 0, f"rank {rank} is outside 1..{num_candidates}"
    return rank, None


# =============================================================================
# CSV Loading
# =============================================================================

def read_ballot_table(filepath: Path) -> pd.DataFrame:
    """
    Read a ballot CSV into a frame of stripped strings.

    Raises:
        FileNotFoundError: If the file doesn't exist
        BallotError: If the file is empty or cannot be tokenized
    """
    if not filepath.exists():
        raise FileNotFoundError(f"Ballot file not found: {filepath}")

    try:
        df = pd.read_csv(
            filepath,
            sep=",",
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError:
        raise BallotError(f"Ballot file is empty: {filepath}") from None
    except pd.errors.ParserError as e:
        raise BallotError(f"Ballot file is malformed: {e}") from None

    df = df.fillna("").apply(lambda col: col.str.strip())
    # Rows made only of commas survive skip_blank_lines.
    df = df[(df != "").any(axis=1)].reset_index(drop=True)
    if df.empty:
        raise BallotError(f"Ballot file is empty: {filepath}")
    return df


def split_ballot_table(df: pd.DataFrame) -> tuple[list[str], list[str], pd.DataFrame]:
    """
    Separate candidate names, voter labels and voter cells.

    An optional header row starting with ``candidates`` is discarded; its
    other cells become the voter labels. Trailing all-blank voter columns
    are dropped.

    Returns:
        Tuple of (candidates, voters, cells); ``cells`` has one column per
        voter and one row per candidate
    """
    header = None
    if df.iat[0, 0].casefold() == HEADER_MARKER:
        header = df.iloc[0, 1:].tolist()
        df = df.iloc[1:].reset_index(drop=True)

    candidates = df.iloc[:, 0].tolist()
    cells = df.iloc[:, 1:]

    used = [j for j in range(cells.shape[1]) if (cells.iloc[:, j] != "").any()]
    width = used[-1] + 1 if used else 0
    cells = cells.iloc[:, :width].copy()

    if header is not None:
        header = (header + [""] * width)[:width]
    voters = _voter_labels(header, width)
    cells.columns = voters
    return candidates, voters, cells


def load_ballot_csv(filepath, numeric: bool = False) -> VoteMatrix:
    """
    Load and validate a ballot CSV file.

    Args:
        filepath: Path to the CSV file
        numeric: Read cells as explicit ranks instead of candidate names

    Returns:
        The validated VoteMatrix

    Raises:
        FileNotFoundError: If the file doesn't exist
        BallotError: With every problem found in the file
    """
    filepath = Path(filepath)
    df = read_ballot_table(filepath)
    candidates, voters, cells = split_ballot_table(df)

    errors = []
    for j, voter in enumerate(voters):
        if not (cells.iloc[:, j] != "").any():
            errors.append(f"voter {voter} column is blank")

    if numeric:
        ranks = [cells.iloc[:, j].tolist() for j in range(len(voters))]
        try:
            matrix = VoteMatrix.from_ranks(candidates, ranks, voters)
        except BallotError as e:
            raise BallotError(errors + e.errors) from None
    else:
        ballots = []
        for j, voter in enumerate(voters):
            column = cells.iloc[:, j].tolist()
            filled = [i for i, value in enumerate(column) if value]
            ballot = column[:filled[-1] + 1] if filled else []
            if "" in ballot:
                errors.append(f"gap in voter {voter} rankings")
                ballot = [name for name in ballot if name]
            ballots.append(ballot)
        try:
            matrix = VoteMatrix.from_ballots(candidates, ballots, voters)
        except BallotError as e:
            raise BallotError(errors + e.errors) from None

    if errors:
        raise BallotError(errors)

    logger.info(
        "%d candidates and %d voters found.",
        matrix.num_candidates, matrix.num_voters
    )
    logger.debug("Rankings by voter:\n%s", matrix.ranks.to_string())
    return matrix
