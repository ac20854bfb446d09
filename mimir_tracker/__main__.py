import sys

from mimir_tracker.cli import main

sys.exit(main())
