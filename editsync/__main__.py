"""
Allow running editsync as a module.

Usage:
    python -m editsync status
    python -m editsync drain octo/notes
"""

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
