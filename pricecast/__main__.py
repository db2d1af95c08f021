"""Allow running as `python -m pricecast`."""

import sys

from pricecast.cli import main

sys.exit(main())
