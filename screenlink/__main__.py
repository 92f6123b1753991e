"""Allow ``python -m screenlink``."""

import sys

from screenlink.cli import main

sys.exit(main())
