"""Allow ``python -m gitbiome``."""

from __future__ import annotations

import sys

from gitbiome.cli import main

if __name__ == "__main__":
    sys.exit(main())
