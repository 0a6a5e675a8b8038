"""Allow running the CLI as ``python -m poolmigrate``."""

import sys

from poolmigrate.cli import main

sys.exit(main())
