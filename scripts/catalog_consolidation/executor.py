"""
Merge Executor

Applies MergePlans against the Catalog Service one step at a time, strictly in
plan order. Dry-run mode records what would happen without any service call.

A failed step only blocks the later steps that list it in `requires`; other
groups always proceed. Nothing is rolled back.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .models import (
    MergeOutcome,
    MergePlan,
    MergeStep,
    OutcomeStatus,
    ServiceResult,
    StepKind,
)

log = logging.getLogger(__name__)

GROUP_PLANNED = "planned"
GROUP_APPLIED = "applied"
GROUP_PARTIAL = "partial"
GROUP_FAILED = "failed"
GROUP_NOT_STARTED = "not_started"


def group_status(outcomes: List[MergeOutcome]) -> str:
    if not outcomes:
        return GROUP_NOT_STARTED
    statuses = {o.status for o in outcomes}
    if statuses == {OutcomeStatus.PLANNED}:
        return GROUP_PLANNED
    if statuses == {OutcomeStatus.SUCCEEDED}:
        return GROUP_APPLIED
    if OutcomeStatus.SUCCEEDED in statuses:
        return GROUP_PARTIAL
    return GROUP_FAILED


@dataclass
class ExecutionRun:
    dry_run: bool
    outcomes: Dict[str, List[MergeOutcome]] = field(default_factory=dict)
    not_started: List[str] = field(default_factory=list)
    cancelled: bool = False
    service_calls: int = 0

    def all_outcomes(self) -> List[MergeOutcome]:
        return [o for group in self.outcomes.values() for o in group]

    def status_of(self, group_key: str) -> str:
        return group_status(self.outcomes.get(group_key, []))


class MergeExecutor:
    def __init__(
        self,
        client=None,
        dry_run: bool = True,
        pacing_batch: int = 10,
        pacing_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: Optional[threading.Event] = None,
    ):
        if not dry_run and client is None:
            raise ValueError("apply mode needs a Catalog Service client")
        self.client = client
        self.dry_run = dry_run
        self.pacing_batch = max(1, pacing_batch)
        self.pacing_delay = pacing_delay
        self.sleep = sleep
        self.cancel_event = cancel_event or threading.Event()
        self.calls = 0

    def execute_all(self, plans: List[MergePlan]) -> ExecutionRun:
        run = ExecutionRun(dry_run=self.dry_run)
        for i, plan in enumerate(plans):
            if self.cancel_event.is_set():
                run.cancelled = True
                run.not_started = [p.group_key for p in plans[i:]]
                log.warning("Cancelled: %d group(s) not started", len(run.not_started))
                break
            run.outcomes[plan.group_key] = self.execute(plan)
            log.info("%s: %s", plan.group_key, run.status_of(plan.group_key))
        run.service_calls = self.calls
        return run

    def execute(self, plan: MergePlan) -> List[MergeOutcome]:
        outcomes: List[MergeOutcome] = []
        for index, step in enumerate(plan.steps):
            outcome = self._run_step(plan, index, step, outcomes)
            outcomes.append(outcome)
            if outcome.status == OutcomeStatus.FAILED:
                log.warning("  [%d] %s FAILED: %s", index, step.description, outcome.detail)
            else:
                log.debug("  [%d] %s: %s", index, step.description, outcome.status.value)
        return outcomes

    def _run_step(
        self, plan: MergePlan, index: int, step: MergeStep, done: List[MergeOutcome]
    ) -> MergeOutcome:
        def outcome(status: OutcomeStatus, detail: str) -> MergeOutcome:
            return MergeOutcome(plan.group_key, index, step.kind, step.entry_id, status, detail)

        blocked = [i for i in step.requires if i >= len(done) or not done[i].ok]
        if blocked:
            names = ", ".join(f"#{i} {plan.steps[i].kind.value}" for i in blocked)
            return outcome(OutcomeStatus.SKIPPED, f"depends on failed step {names}")

        if self.dry_run:
            suffix = " (already in place)" if step.noop else ""
            return outcome(OutcomeStatus.PLANNED, f"would {step.description}{suffix}")

        if step.noop:
            return outcome(OutcomeStatus.SUCCEEDED, "already in place")

        try:
            result = self._dispatch(step)
        except Exception as exc:  # noqa: BLE001
            log.exception("Unexpected error during %s", step.kind.value)
            return outcome(OutcomeStatus.FAILED, f"unexpected: {exc}")
        finally:
            self._pace()

        if result.ok:
            return outcome(OutcomeStatus.SUCCEEDED, step.description)
        return outcome(OutcomeStatus.FAILED, result.describe())

    def _dispatch(self, step: MergeStep) -> ServiceResult:
        p = step.payload
        if step.kind == StepKind.RENAME_OPTION:
            return self.client.rename_option(step.entry_id, p["option_id"], p["to"])
        if step.kind == StepKind.UPDATE_PRIMARY_VARIANT:
            return self.client.update_variant_option_value(
                step.entry_id, p["variant_id"], p["option_name"], p["value"]
            )
        if step.kind == StepKind.CREATE_VARIANT:
            return self.client.create_variant(
                step.entry_id,
                p["option_name"],
                p["value"],
                p["price"],
                p.get("compare_at_price"),
                p.get("sku", ""),
            )
        if step.kind == StepKind.ARCHIVE_ENTRY:
            return self.client.update_entry(step.entry_id, {"status": "ARCHIVED"})
        if step.kind == StepKind.RETITLE_PRIMARY:
            return self.client.update_entry(step.entry_id, {"title": p["to"]})
        raise ValueError(f"Unknown step kind: {step.kind}")

    def _pace(self) -> None:
        self.calls += 1
        if self.calls % self.pacing_batch == 0 and self.pacing_delay > 0:
            log.debug("Pausing %.1fs after %d calls", self.pacing_delay, self.calls)
            self.sleep(self.pacing_delay)
