"""
Report Writer

Writes one JSON document per run (overwritten, never appended) plus a CSV of
the step table, in both dry-run and execute modes so the two are diffable.
"""

from __future__ import annotations

import json
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .analyzer import SnapshotStats
from .executor import ExecutionRun
from .models import (
    CatalogEntry,
    GroupMember,
    MergeGroup,
    MergePlan,
    PlanRejection,
    StepKind,
    format_price,
)

STEP_COLUMNS = [
    "group_key",
    "step_index",
    "kind",
    "entry_id",
    "description",
    "noop",
    "status",
    "detail",
]


def _member_dict(member: GroupMember, role: str) -> Dict:
    entry: CatalogEntry = member.entry
    return {
        "id": entry.id,
        "title": entry.title,
        "handle": entry.handle,
        "status": entry.status,
        "role": role,
        "label": member.label,
        "min_price": format_price(entry.min_price),
        "total_inventory": entry.total_inventory,
        "variant_count": len(entry.variants),
        "image_count": len(entry.images),
    }


def _members(group: MergeGroup, primary_id: Optional[str]) -> List[Dict]:
    rows = [_member_dict(a, "anchor") for a in group.anchors]
    for m in group.members:
        role = "primary" if m.entry.id == primary_id else "member"
        rows.append(_member_dict(m, role))
    return rows


class ReportWriter:
    def __init__(self, output_dir: Path, job: str):
        self.output_dir = Path(output_dir)
        self.job = job

    @property
    def json_path(self) -> Path:
        return self.output_dir / f"{self.job.replace('-', '_')}_report.json"

    @property
    def csv_path(self) -> Path:
        return self.json_path.with_suffix(".csv")

    def build(
        self,
        groups: List[MergeGroup],
        plans: List[MergePlan],
        rejections: List[PlanRejection],
        run: ExecutionRun,
        stats: SnapshotStats,
        policy: str,
    ) -> Dict:
        by_key = {g.key: g for g in groups}
        status_of_entry = {e.id: e.status for g in groups for e in g.entries}

        merges = []
        step_rows = []
        archived_active = 0
        for plan in plans:
            outcomes = run.outcomes.get(plan.group_key, [])
            steps = []
            for i, step in enumerate(plan.steps):
                outcome = outcomes[i] if i < len(outcomes) else None
                status = outcome.status.value if outcome else "not_started"
                detail = outcome.detail if outcome else ""
                steps.append({
                    "index": i,
                    **step.to_dict(),
                    "outcome": {"status": status, "detail": detail},
                })
                step_rows.append({
                    "group_key": plan.group_key,
                    "step_index": i,
                    "kind": step.kind.value,
                    "entry_id": step.entry_id,
                    "description": step.description,
                    "noop": step.noop,
                    "status": status,
                    "detail": detail,
                })
                if (
                    step.kind == StepKind.ARCHIVE_ENTRY
                    and outcome is not None
                    and outcome.ok
                    and status_of_entry.get(step.entry_id) == "ACTIVE"
                ):
                    archived_active += 1

            group = by_key.get(plan.group_key)
            merges.append({
                "group_key": plan.group_key,
                "base_name": plan.base_name,
                "vendor": group.vendor if group else "",
                "product_type": group.product_type if group else "",
                "option_name": plan.option_name,
                "primary_id": plan.primary_id,
                "status": run.status_of(plan.group_key),
                "members": _members(group, plan.primary_id) if group else [],
                "steps": steps,
            })

        rejected = []
        for rejection in rejections:
            group = by_key.get(rejection.group_key)
            rejected.append({
                "group_key": rejection.group_key,
                "reason": rejection.reason,
                "members": _members(group, None) if group else [],
            })

        step_status = Counter(row["status"] for row in step_rows)
        group_status = Counter(m["status"] for m in merges)
        to_archive = sum(len(p.steps_of(StepKind.ARCHIVE_ENTRY)) for p in plans)

        return {
            "generated_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "job": self.job,
            "mode": "dry-run" if run.dry_run else "execute",
            "policy": policy,
            "snapshot": stats.to_dict(),
            "merges": merges,
            "rejected": rejected,
            "not_started": list(run.not_started),
            "summary": {
                "groups_found": len(groups),
                "groups_planned": len(plans),
                "groups_rejected": len(rejections),
                "groups_by_status": dict(group_status),
                "entries_to_archive": to_archive,
                "steps_total": len(step_rows),
                "steps_by_status": dict(step_status),
                "active_before": stats.active,
                "projected_active_after": stats.active - archived_active,
                "cancelled": run.cancelled,
                "service_calls": run.service_calls,
            },
            "_step_rows": step_rows,
        }

    def write(self, report: Dict) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        step_rows = report.pop("_step_rows", [])

        with open(self.json_path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)

        df = pd.DataFrame(step_rows, columns=STEP_COLUMNS)
        df.to_csv(self.csv_path, index=False)
        return self.json_path
