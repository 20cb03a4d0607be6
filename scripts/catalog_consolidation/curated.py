"""
Curated Families

Some families cannot be found by title rules, e.g. flavored chews whose titles
carry both a flavor and a size ("Dog Composure Bacon 5.64 oz",
"Dog Composure Chicken 4.76 oz"). These are listed by hand in a JSON file:

    {
      "families": [
        {
          "title": "VetriScience Dog Composure Calming Chews",
          "option_name": "Flavor",
          "primary": "vetriscience-dog-composure-bacon-5-64-oz",
          "members": [
            {"handle": "vetriscience-dog-composure-bacon-5-64-oz", "label": "Bacon"},
            {"handle": "vetriscience-dog-composure-chicken-4-76-oz", "label": "Chicken"}
          ]
        }
      ]
    }

Each family becomes a MergeGroup with its primary pinned, and then goes
through the same planner, executor and report as the rule-based merge.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from .models import CatalogEntry, GroupMember, MergeGroup, PlanRejection, SizeToken
from .patterns import collapse

log = logging.getLogger(__name__)


class FamilyConfigError(ValueError):
    """The families file is missing, unreadable or malformed."""


@dataclass(frozen=True)
class FamilyMember:
    handle: str
    label: str


@dataclass(frozen=True)
class CuratedFamily:
    title: str
    option_name: str
    primary: str
    members: Tuple[FamilyMember, ...]

    @property
    def key(self) -> str:
        return f"curated|{self.primary}"


def _text(raw: Dict, field: str, where: str) -> str:
    value = raw.get(field)
    if not isinstance(value, str) or not value.strip():
        raise FamilyConfigError(f"{where}: '{field}' must be a non-empty string")
    return collapse(value)


def parse_families(data) -> List[CuratedFamily]:
    if not isinstance(data, dict) or not isinstance(data.get("families"), list):
        raise FamilyConfigError("expected an object with a 'families' list")

    families: List[CuratedFamily] = []
    seen_handles: Dict[str, str] = {}
    for i, raw in enumerate(data["families"], 1):
        where = f"family #{i}"
        if not isinstance(raw, dict):
            raise FamilyConfigError(f"{where}: expected an object")
        title = _text(raw, "title", where)
        option_name = _text(raw, "option_name", where)
        primary = _text(raw, "primary", where)

        members: List[FamilyMember] = []
        labels = set()
        for j, m in enumerate(raw.get("members") or [], 1):
            if not isinstance(m, dict):
                raise FamilyConfigError(f"{where}, member #{j}: expected an object")
            member = FamilyMember(
                handle=_text(m, "handle", f"{where}, member #{j}"),
                label=_text(m, "label", f"{where}, member #{j}"),
            )
            if member.label.lower() in labels:
                raise FamilyConfigError(f"{where}: duplicate label {member.label!r}")
            if member.handle in seen_handles:
                raise FamilyConfigError(
                    f"{where}: handle {member.handle!r} already listed in {seen_handles[member.handle]}"
                )
            labels.add(member.label.lower())
            seen_handles[member.handle] = where
            members.append(member)

        if len(members) < 2:
            raise FamilyConfigError(f"{where}: needs at least two members")
        if primary not in {m.handle for m in members}:
            raise FamilyConfigError(f"{where}: primary {primary!r} is not one of its members")
        families.append(CuratedFamily(title, option_name, primary, tuple(members)))
    return families


def load_families(path: Path) -> List[CuratedFamily]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise FamilyConfigError(f"families file not found: {path}")
    except json.JSONDecodeError as exc:
        raise FamilyConfigError(f"{path}: invalid JSON ({exc})")
    return parse_families(data)


def build_family_groups(
    families: Iterable[CuratedFamily], entries: Iterable[CatalogEntry]
) -> Tuple[List[MergeGroup], List[PlanRejection]]:
    """Resolve each family's handles against the snapshot.

    Handles that are missing are skipped with a warning; archived members are
    taken as already merged. A family whose primary is missing or archived,
    or that has nothing left to fold in, is rejected.
    """
    by_handle = {e.handle: e for e in entries}
    groups: List[MergeGroup] = []
    rejections: List[PlanRejection] = []

    for family in families:
        primary = by_handle.get(family.primary)
        if primary is None:
            rejections.append(PlanRejection(family.key, f"primary {family.primary!r} not found"))
            continue
        if primary.is_archived:
            rejections.append(PlanRejection(family.key, f"primary {family.primary!r} is archived"))
            continue

        members: List[GroupMember] = []
        for member in family.members:
            entry = by_handle.get(member.handle)
            if entry is None:
                log.warning("%s: product not found: %s", family.key, member.handle)
                continue
            if entry.is_archived:
                log.debug("%s: %s already archived", family.key, member.handle)
                continue
            token = SizeToken(
                base_name=family.title,
                token=member.label,
                rule="curated",
                option_name=family.option_name,
                label_key=member.label.lower(),
            )
            members.append(GroupMember(entry, token))

        if len(members) < 2:
            rejections.append(PlanRejection(family.key, "nothing left to merge"))
            continue

        groups.append(MergeGroup(
            key=family.key,
            base_name=family.title,
            vendor=primary.vendor,
            product_type=primary.product_type,
            members=members,
            primary_id=primary.id,
        ))

    log.info("Resolved %d curated famil%s", len(groups), "y" if len(groups) == 1 else "ies")
    return groups, rejections
