#!/usr/bin/env python3
"""
Archive Duplicate Products

Finds products whose clean (size-free) title already exists and archives the
remaining sized copies.

Usage:
    python scripts/archive_duplicates.py
    python scripts/archive_duplicates.py --execute
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from catalog_consolidation.cli import archive_main


if __name__ == "__main__":
    sys.exit(archive_main())
