"""
Merge Planner

Turns a MergeGroup into an ordered, side-effect-free MergePlan, or rejects it.
Ambiguous groups are rejected rather than guessed at.

Step order for the cheapest (default) and curated policies:

    rename option -> update primary variant -> create variants -> archive -> retitle

Each step lists the earlier steps it depends on. Archiving a member requires
its variant to exist on the primary, and the primary keeps its sized title
until every variant is in place, so a partially applied merge regroups on the
next run.

The curated policy keeps the primary named by its family; the cheapest policy
picks the lowest-priced member.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

from .analyzer import id_sort_key
from .models import (
    CatalogEntry,
    GroupMember,
    MergeGroup,
    MergePlan,
    MergeStep,
    PlanRejection,
    StepKind,
    VariantRecord,
    format_price,
)
from .patterns import collapse

log = logging.getLogger(__name__)

POLICY_CHEAPEST = "cheapest"
POLICY_CLEAN_TITLE = "clean-title"
POLICY_CURATED = "curated"
POLICIES = (POLICY_CHEAPEST, POLICY_CLEAN_TITLE, POLICY_CURATED)


def _value_key(value: str) -> str:
    return collapse(value).lower()


def price_sort_key(entry: CatalogEntry):
    price = entry.min_price
    return (price is None, price if price is not None else Decimal(0), id_sort_key(entry.id))


class MergePlanner:
    def __init__(self, policy: str = POLICY_CHEAPEST):
        if policy not in POLICIES:
            raise ValueError(f"Unknown primary policy {policy!r}; expected one of {POLICIES}")
        self.policy = policy

    def plan(self, group: MergeGroup) -> Union[MergePlan, PlanRejection]:
        if self.policy == POLICY_CLEAN_TITLE:
            result = self._plan_clean_anchor(group)
        else:
            result = self._plan_variants(group)
        if isinstance(result, PlanRejection):
            log.info("Skipping %s: %s", group.key, result.reason)
        return result

    def plan_all(self, groups: List[MergeGroup]) -> Tuple[List[MergePlan], List[PlanRejection]]:
        plans: List[MergePlan] = []
        rejections: List[PlanRejection] = []
        for group in groups:
            result = self.plan(group)
            if isinstance(result, PlanRejection):
                rejections.append(result)
            else:
                plans.append(result)
        return plans, rejections

    # ------------------------------------------------------------ variants

    def _plan_variants(self, group: MergeGroup) -> Union[MergePlan, PlanRejection]:
        members = group.members
        if len(members) < 2:
            return PlanRejection(group.key, "fewer than two sized entries")

        option_names = sorted({m.size.option_name for m in members})
        if len(option_names) > 1:
            return PlanRejection(group.key, f"mixed option axes: {', '.join(option_names)}")
        option_name = option_names[0]

        seen: Dict[str, str] = {}
        for m in members:
            if m.size.label_key in seen:
                return PlanRejection(
                    group.key,
                    f"duplicate label: {seen[m.size.label_key]!r} and {m.label!r}",
                )
            seen[m.size.label_key] = m.label

        ordered = sorted(members, key=lambda m: price_sort_key(m.entry))
        if self.policy == POLICY_CURATED:
            pinned = [m for m in ordered if m.entry.id == group.primary_id]
            if not pinned:
                return PlanRejection(group.key, "pinned primary is not among the members")
            primary = pinned[0]
            others = [m for m in ordered if m is not primary]
        else:
            primary, others = ordered[0], ordered[1:]
        p_entry = primary.entry

        if not p_entry.variants:
            return PlanRejection(group.key, f"primary {p_entry.title!r} has zero variants")
        option = p_entry.first_option
        if option is None:
            return PlanRejection(group.key, f"primary {p_entry.title!r} declares no option")
        for other in others:
            variants = other.entry.variants
            if not variants or variants[0].price is None:
                return PlanRejection(group.key, f"no resolvable price for {other.entry.title!r}")
            if len(variants) > 1:
                return PlanRejection(
                    group.key,
                    f"{other.entry.title!r} already has {len(variants)} variants",
                )

        existing = {
            _value_key(v.option_values[0]): v for v in p_entry.variants if v.option_values
        }
        primary_variant = self._primary_variant(p_entry, primary.label, existing)
        if primary_variant is None:
            return PlanRejection(
                group.key,
                f"primary {p_entry.title!r} already has {len(p_entry.variants)} variants",
            )

        steps: List[MergeStep] = []
        steps.append(MergeStep(
            kind=StepKind.RENAME_OPTION,
            entry_id=p_entry.id,
            description=f'Rename option "{option.name}" -> "{option_name}"',
            payload={"option_id": option.id, "from": option.name, "to": option_name},
            noop=option.name == option_name,
        ))
        current_value = primary_variant.option_values[0] if primary_variant.option_values else ""
        steps.append(MergeStep(
            kind=StepKind.UPDATE_PRIMARY_VARIANT,
            entry_id=p_entry.id,
            description=f'Set {option_name} "{primary.label}" on primary variant',
            payload={
                "variant_id": primary_variant.id,
                "option_name": option_name,
                "value": primary.label,
                "previous_value": current_value,
            },
            requires=(0,),
            noop=_value_key(current_value) == _value_key(primary.label),
        ))

        create_index: Dict[str, int] = {}
        for other in others:
            variant = other.entry.variants[0]
            create_index[other.entry.id] = len(steps)
            steps.append(MergeStep(
                kind=StepKind.CREATE_VARIANT,
                entry_id=p_entry.id,
                description=(
                    f'Create {option_name} "{other.label}" at ${format_price(variant.price)}'
                    + (f" (sku {variant.sku})" if variant.sku else "")
                ),
                payload={
                    "option_name": option_name,
                    "value": other.label,
                    "price": format_price(variant.price),
                    "compare_at_price": format_price(variant.compare_at_price),
                    "sku": variant.sku,
                    "inventory_quantity": variant.inventory_quantity,
                    "source_entry_id": other.entry.id,
                    "source_title": other.entry.title,
                },
                requires=(0, 1),
                noop=_value_key(other.label) in existing,
            ))

        for other in others:
            steps.append(self._archive_step(other.entry, requires=(create_index[other.entry.id],)))

        if p_entry.title != group.base_name:
            steps.append(MergeStep(
                kind=StepKind.RETITLE_PRIMARY,
                entry_id=p_entry.id,
                description=f'Retitle "{p_entry.title}" -> "{group.base_name}"',
                payload={"from": p_entry.title, "to": group.base_name},
                requires=tuple(range(2 + len(others))),
            ))

        return MergePlan(
            group_key=group.key,
            base_name=group.base_name,
            option_name=option_name,
            primary_id=p_entry.id,
            policy=self.policy,
            steps=tuple(steps),
        )

    @staticmethod
    def _primary_variant(
        entry: CatalogEntry, label: str, existing: Dict[str, VariantRecord]
    ) -> Optional[VariantRecord]:
        if len(entry.variants) == 1:
            return entry.variants[0]
        # Already partially merged: the primary's own label must be present.
        return existing.get(_value_key(label))

    # ---------------------------------------------------------- clean title

    def _plan_clean_anchor(self, group: MergeGroup) -> Union[MergePlan, PlanRejection]:
        if not group.anchors:
            return PlanRejection(group.key, "no clean anchor")
        if len(group.anchors) > 1:
            titles = ", ".join(repr(a.entry.title) for a in group.anchors)
            return PlanRejection(group.key, f"multiple clean anchors: {titles}")
        if not group.members:
            return PlanRejection(group.key, "no sized duplicates")

        anchor = group.anchors[0].entry
        ordered: List[GroupMember] = sorted(group.members, key=lambda m: price_sort_key(m.entry))
        steps = tuple(self._archive_step(m.entry) for m in ordered)
        return MergePlan(
            group_key=group.key,
            base_name=group.base_name,
            option_name="",
            primary_id=anchor.id,
            policy=self.policy,
            steps=steps,
        )

    @staticmethod
    def _archive_step(entry: CatalogEntry, requires: Tuple[int, ...] = ()) -> MergeStep:
        return MergeStep(
            kind=StepKind.ARCHIVE_ENTRY,
            entry_id=entry.id,
            description=f'Archive "{entry.title}"',
            payload={"title": entry.title, "handle": entry.handle, "status": "ARCHIVED"},
            requires=requires,
        )
