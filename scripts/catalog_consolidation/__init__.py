"""
Shopify Catalog Consolidation Module

Finds products that are the same item sold in different pack sizes or flavors,
folds them into one product with a Size/Count/Flavor option, and archives the
leftovers. Runs as a dry run unless told to execute.

Usage:
    python scripts/merge_products.py
    python scripts/merge_products.py --execute
    python scripts/archive_duplicates.py --execute
    python scripts/merge_curated.py --families curated_families.json
"""

from .patterns import TitleNormalizer, SIZE_PATTERNS, extract_size_token
from .client import CatalogServiceClient
from .loader import SnapshotLoader, LoadError
from .analyzer import GroupingEngine
from .curated import CuratedFamily, FamilyConfigError, build_family_groups, load_families
from .planner import MergePlanner
from .executor import MergeExecutor
from .report import ReportWriter

__version__ = "1.0.0"
__all__ = [
    "TitleNormalizer",
    "SIZE_PATTERNS",
    "extract_size_token",
    "CatalogServiceClient",
    "SnapshotLoader",
    "LoadError",
    "GroupingEngine",
    "CuratedFamily",
    "FamilyConfigError",
    "build_family_groups",
    "load_families",
    "MergePlanner",
    "MergeExecutor",
    "ReportWriter",
]
