"""tm2bd - sync task-master-ai tasks into the Beads issue tracker.

Usage:
    python main.py sync --tasks .taskmaster/tasks/tasks.json --project .
    # or via entry point:
    tm2bd sync --dry-run
"""

import sys

from tm2bd.cli import main

if __name__ == "__main__":
    sys.exit(main())
