"""
fairdraw package __main__ entry point.

Allows running with: python -m fairdraw
"""

import sys

from fairdraw.app.cli import main

if __name__ == "__main__":
    sys.exit(main())
