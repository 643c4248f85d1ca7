"""
Command-line entry point.

Usage:
    ranked-tally ballots.csv
    ranked-tally ballots.csv --numeric --output results.xlsx
    python -m ranked_tally ballots.csv --verbose
"""

import argparse
import logging
import sys
from pathlib import Path

from ranked_tally.ballots import load_ballot_csv
from ranked_tally.engine import tally
from ranked_tally.errors import BallotError, TallyInvariantError
from ranked_tally.model import TallyOptions
from ranked_tally.results import format_rankings, write_results

EXIT_OK = 0
EXIT_INPUT_ERROR = 1
EXIT_INTERNAL_ERROR = 2
EXIT_TIES = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ranked-tally",
        description="Tally ranked ballots: Condorcet first, Ranked Pairs for the rest",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
The first CSV column lists the candidates; each further column is a voter.
An optional header row starting with "candidates" names the voters.

Examples:
    ranked-tally ballots.csv
    ranked-tally ranks.csv --numeric --output results.xlsx
    ranked-tally ballots.csv --verbose
        """
    )

    parser.add_argument(
        "input",
        type=Path,
        help="Path to the ballot CSV file"
    )

    parser.add_argument(
        "--numeric", "-n",
        action="store_true",
        help="Cells hold rank numbers per candidate instead of candidate names in order"
    )

    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=None,
        help="Also write results to this .xlsx or .csv file"
    )

    parser.add_argument(
        "--classic-loser",
        action="store_true",
        help="Accept a Condorcet loser even if none of its pairings is tied"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print progress information"
    )

    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Print vote matrix and pairings as well"
    )

    return parser


def configure_logging(verbose: bool = False, debug: bool = False):
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")


def main(argv=None) -> int:
    """Main entry point for command-line usage. Returns the exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.debug)
    options = TallyOptions(classic_loser=args.classic_loser)

    try:
        votes = load_ballot_csv(args.input, numeric=args.numeric)
        result = tally(votes, options)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INPUT_ERROR
    except BallotError as e:
        for problem in e.errors:
            print(f"Error: {problem}", file=sys.stderr)
        print("Error: exiting on ill-formed ballots", file=sys.stderr)
        return EXIT_INPUT_ERROR
    except TallyInvariantError as e:
        print(f"Internal error: {e}", file=sys.stderr)
        return EXIT_INTERNAL_ERROR

    print(f"{votes.num_candidates} candidates and {votes.num_voters} voters found.")
    print("\n" + "=" * 60)
    print("RESULTS")
    print("=" * 60)

    if result.has_ties:
        print(f"\nTIES DETECTED from phase {result.tie_phase} onward (marked ~)")

    print()
    print(format_rankings(result))
    print("\n" + "=" * 60)

    if args.output is not None:
        try:
            write_results(result, args.output)
        except (ValueError, OSError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_INPUT_ERROR
        print(f"Saved results to {args.output}")

    return EXIT_TIES if result.has_ties else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
