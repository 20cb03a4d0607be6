"""
Grouping Engine for Catalog Consolidation

Partitions a catalog snapshot into candidate merge groups keyed by
vendor + normalized base name (optionally + product type).
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .models import CatalogEntry, GroupMember, MergeGroup
from .patterns import TitleNormalizer

log = logging.getLogger(__name__)


def id_sort_key(entry_id: str):
    """Order Shopify GIDs by their numeric tail, falling back to the raw string."""
    tail = entry_id.rsplit("/", 1)[-1]
    if tail.isdigit():
        return (0, int(tail), entry_id)
    return (1, 0, entry_id)


@dataclass
class SnapshotStats:
    """Totals measured from the freshly loaded snapshot."""
    total: int
    by_status: Dict[str, int] = field(default_factory=dict)
    unsized: int = 0
    invalid: int = 0  # a size token matched but the base name came out empty

    @property
    def active(self) -> int:
        return self.by_status.get("ACTIVE", 0)

    def to_dict(self) -> Dict:
        return {
            "total_entries": self.total,
            "by_status": dict(self.by_status),
            "active_entries": self.active,
            "entries_without_size": self.unsized,
            "invalid_titles": self.invalid,
        }


class GroupingEngine:
    """
    Builds MergeGroups from a snapshot.

    `include_anchors` switches on the archive-duplicates variant: token-less
    ("clean") titles become anchors of the group sharing their name, and only
    groups holding at least one anchor and one sized entry are emitted.
    """

    def __init__(
        self,
        normalizer: Optional[TitleNormalizer] = None,
        by_product_type: bool = False,
        include_anchors: bool = False,
        vendor: Optional[str] = None,
    ):
        self.normalizer = normalizer or TitleNormalizer()
        self.by_product_type = by_product_type
        self.include_anchors = include_anchors
        self.vendor = vendor.lower().strip() if vendor else None

    def group_key(self, entry: CatalogEntry, base_name: str) -> str:
        parts = [entry.vendor.strip(), base_name]
        if self.by_product_type:
            parts.append(entry.product_type.strip())
        return "|".join(parts).lower()

    def stats(self, entries: Iterable[CatalogEntry]) -> SnapshotStats:
        entries = list(entries)
        statuses = Counter(e.status for e in entries)
        invalid = sum(1 for e in entries if self.normalizer.is_invalid(e.title))
        unsized = sum(1 for e in entries if not self.normalizer.has_size(e.title)) - invalid
        return SnapshotStats(
            total=len(entries), by_status=dict(statuses), unsized=unsized, invalid=invalid
        )

    def group(self, entries: Iterable[CatalogEntry]) -> List[MergeGroup]:
        sized: Dict[str, List[GroupMember]] = defaultdict(list)
        anchors: Dict[str, List[GroupMember]] = defaultdict(list)

        for entry in entries:
            if entry.is_archived:
                continue
            if self.vendor and entry.vendor.lower().strip() != self.vendor:
                continue
            token = self.normalizer.extract(entry.title)
            if token is not None:
                sized[self.group_key(entry, token.base_name)].append(GroupMember(entry, token))
            elif self.include_anchors and not self.normalizer.is_invalid(entry.title):
                clean = self.normalizer.clean_name(entry.title)
                if clean:
                    anchors[self.group_key(entry, clean)].append(GroupMember(entry, None))

        groups: List[MergeGroup] = []
        for key, members in sized.items():
            key_anchors = anchors.get(key, [])
            if self.include_anchors:
                if not key_anchors:
                    continue
            elif len(members) < 2:
                continue

            members = sorted(members, key=lambda m: id_sort_key(m.entry.id))
            key_anchors = sorted(key_anchors, key=lambda m: id_sort_key(m.entry.id))
            first = key_anchors[0].entry if key_anchors else members[0].entry
            base_name = (
                self.normalizer.clean_name(first.title) if key_anchors else members[0].size.base_name
            )
            groups.append(MergeGroup(
                key=key,
                base_name=base_name,
                vendor=first.vendor,
                product_type=first.product_type,
                members=members,
                anchors=key_anchors,
            ))

        groups.sort(key=lambda g: (-g.size, g.key))
        log.info("Found %d candidate group(s)", len(groups))
        return groups
