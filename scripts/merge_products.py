#!/usr/bin/env python3
"""
Merge Products with Size Variants

Finds products listed once per pack size or flavor and merges each family into
one product with a Count/Size/Flavor option, archiving the leftovers.

Usage:
    python scripts/merge_products.py                 # dry run, writes a plan report
    python scripts/merge_products.py --execute       # apply and write a post-apply report

Options:
    --execute           Apply changes to the store
    --by-product-type   Also group on product type
    --vendor NAME       Only consider one vendor
    --limit N           Process at most N groups
    --output-dir DIR    Report directory (default: outputs/catalog_consolidation)
    --verbose           Show detailed output
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from catalog_consolidation.cli import merge_main


if __name__ == "__main__":
    sys.exit(merge_main())
