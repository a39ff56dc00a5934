"""Allow ``python -m themekit``."""

import sys

from themekit.cli import main

sys.exit(main())
