"""Allow ``python -m waxsync``."""

import sys

from waxsync.cli import main

sys.exit(main())
