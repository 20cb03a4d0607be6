#!/usr/bin/env python3
"""
Merge Curated Product Families

Merges families listed by hand in a JSON file (primary handle, new title,
option name and one label per member handle). Use it for families the title
rules cannot find, such as flavored chews whose titles also carry a size.

Usage:
    python scripts/merge_curated.py                               # dry run
    python scripts/merge_curated.py --families my_families.json   # other file
    python scripts/merge_curated.py --execute                     # apply

Options:
    --families FILE     Families file (default: curated_families.json)
    --execute           Apply changes to the store
    --limit N           Process at most N families
    --output-dir DIR    Report directory (default: outputs/catalog_consolidation)
    --verbose           Show detailed output
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from catalog_consolidation.cli import curated_main


if __name__ == "__main__":
    sys.exit(curated_main())
