"""Allow ``python -m mixcatalog.cli`` execution."""

import sys

from mixcatalog.cli.jobs import main

sys.exit(main())
