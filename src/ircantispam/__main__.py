"""Allow ``python -m ircantispam``."""

import sys

from ircantispam.cli import main

sys.exit(main())
