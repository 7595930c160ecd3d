"""Entry point for ``python -m assessment_client``."""

import sys

from assessment_client.cli import main

if __name__ == "__main__":
    sys.exit(main())
