"""Allow ``python -m prosemerge``."""

import sys

from prosemerge.main import main

sys.exit(main())
