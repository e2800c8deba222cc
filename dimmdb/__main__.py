"""Allow running as ``python -m dimmdb``."""

import sys

from dimmdb.cli import main

sys.exit(main())
