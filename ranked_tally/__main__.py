import sys

from ranked_tally.cli import main

sys.exit(main())
