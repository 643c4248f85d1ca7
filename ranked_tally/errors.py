"""Exceptions raised while loading ballots or running a tally."""


class TallyError(Exception):
    """Base class for every error raised by ranked_tally."""


class BallotError(TallyError, ValueError):
    """
    The ballot input is malformed.

    All problems found in one pass are kept in ``errors`` so a single run
    can report every bad cell instead of stopping at the first one.
    """

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class TallyInvariantError(TallyError, RuntimeError):
    """An internal invariant of the tally engine was violated."""
