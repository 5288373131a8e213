"""Allow running as ``python -m httplane``."""

import sys

from .cli import main

sys.exit(main())
