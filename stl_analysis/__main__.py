"""Allow ``python -m stl_analysis``."""

import sys

from stl_analysis.cli import main

sys.exit(main())
