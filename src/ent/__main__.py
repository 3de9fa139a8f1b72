"""Allow ``python -m ent``."""

import sys

from ent.cli import main

if __name__ == "__main__":
    sys.exit(main())
