"""
Command-line entry points for the consolidation jobs.

    merge-products       fold size/flavor siblings into one product with variants
    archive-duplicates   archive sized copies of a product that already has a clean title
    merge-curated        merge hand-listed families from a JSON file (see curated.py)

Both default to a dry run. Pass --execute to apply changes.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from .analyzer import GroupingEngine
from .client import CatalogServiceClient
from .config import Settings, load_env_files
from .curated import FamilyConfigError, build_family_groups, load_families
from .executor import MergeExecutor
from .loader import LoadError, SnapshotLoader
from .models import MergeGroup, PlanRejection
from .patterns import TitleNormalizer
from .planner import POLICY_CHEAPEST, POLICY_CLEAN_TITLE, POLICY_CURATED, MergePlanner
from .report import ReportWriter

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Job:
    name: str
    title: str
    policy: str
    include_anchors: bool
    families: bool = False


JOBS = {
    "merge-products": Job("merge-products", "Product Merge Tool", POLICY_CHEAPEST, False),
    "archive-duplicates": Job("archive-duplicates", "Archive Duplicate Products", POLICY_CLEAN_TITLE, True),
    "merge-curated": Job("merge-curated", "Curated Family Merge", POLICY_CURATED, False, families=True),
}


def build_parser(job: Job) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=job.title)
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Apply changes to the store. Without this flag, runs dry-run only.",
    )
    parser.add_argument(
        "--by-product-type",
        action="store_true",
        help="Also require matching product type when grouping",
    )
    parser.add_argument("--vendor", default=None, help="Only consider entries from this vendor")
    parser.add_argument("--limit", type=int, default=None, help="Process at most N groups")
    parser.add_argument("--output-dir", "-o", default=None, help="Report directory")
    parser.add_argument("--page-size", type=int, default=None, help="Products per page (max 250)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show detailed output")
    if job.families:
        parser.add_argument(
            "--families",
            default=None,
            help="JSON file listing the families to merge (default: curated_families.json)",
        )
    return parser


def print_groups(groups: List[MergeGroup], verbose: bool) -> None:
    for i, group in enumerate(groups, 1):
        print(f"{i:2}. {group.base_name}")
        print(f"    Vendor: {group.vendor or '-'}  Type: {group.product_type or '-'}")
        for anchor in group.anchors:
            print(f"    = clean: {anchor.entry.title} ({anchor.entry.handle})")
        for member in group.members:
            entry = member.entry
            price = entry.min_price
            price_text = f"${price:.2f}" if price is not None else "n/a"
            line = f"    - {member.label}: {price_text} ({entry.total_inventory} in stock)"
            if verbose:
                line += f" - {entry.handle} [{entry.status}]"
            print(line)
        print()


def install_interrupt(cancel: threading.Event):
    """First Ctrl-C finishes the current group and stops; the second aborts."""

    def handler(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        print("\nInterrupt received: finishing the current group, then stopping.", file=sys.stderr)
        cancel.set()

    try:
        return signal.signal(signal.SIGINT, handler)
    except ValueError:  # not on the main thread
        return None


def run(
    job: Job,
    argv: Optional[List[str]] = None,
    client_factory: Optional[Callable[[Settings], object]] = None,
) -> int:
    args = build_parser(job).parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    load_env_files()
    settings = Settings.from_env()
    if args.page_size:
        settings.page_size = max(1, min(250, args.page_size))
    if args.output_dir:
        settings.report_dir = Path(args.output_dir)

    families = None
    if job.families:
        if args.families:
            settings.families_file = Path(args.families)
        try:
            families = load_families(settings.families_file)
        except FamilyConfigError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    if client_factory is None:
        settings.require_credentials()
        client = CatalogServiceClient(
            settings.domain,
            settings.token,
            api_version=settings.api_version,
            timeout=settings.timeout,
            max_attempts=settings.max_attempts,
        )
    else:
        client = client_factory(settings)

    dry_run = not args.execute
    print("=" * 70)
    print(job.title)
    print("=" * 70)
    print(f"Store:  {settings.domain or '-'}")
    print(f"API:    {settings.api_version}")
    print(f"Policy: {job.policy}")
    print(f"Mode:   {'DRY-RUN (no changes)' if dry_run else 'EXECUTE (changes will be made!)'}")
    print()

    print("Fetching all products...")
    try:
        entries = SnapshotLoader(client, page_size=settings.page_size).load_all()
    except LoadError as exc:
        print(f"ERROR: could not load catalog snapshot: {exc}", file=sys.stderr)
        return 1
    print(f"Found {len(entries)} products")
    print()

    engine = GroupingEngine(
        TitleNormalizer(),
        by_product_type=args.by_product_type,
        include_anchors=job.include_anchors,
        vendor=args.vendor,
    )
    stats = engine.stats(entries)
    unresolved: List[PlanRejection] = []
    if families is not None:
        groups, unresolved = build_family_groups(families, entries)
    else:
        groups = engine.group(entries)
    del entries
    if args.limit is not None:
        groups = groups[: max(0, args.limit)]

    print("-" * 70)
    print(f"Candidate groups: {len(groups)}")
    print("-" * 70)
    print()
    print_groups(groups, args.verbose)

    plans, rejections = MergePlanner(job.policy).plan_all(groups)
    rejections = unresolved + rejections
    for rejection in rejections:
        print(f"  SKIPPED {rejection.group_key}: {rejection.reason}")
    if rejections:
        print()

    cancel = threading.Event()
    previous = install_interrupt(cancel)
    try:
        executor = MergeExecutor(
            client=client,
            dry_run=dry_run,
            pacing_batch=settings.pacing_batch,
            pacing_delay=settings.pacing_delay,
            cancel_event=cancel,
        )
        execution = executor.execute_all(plans)
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)

    writer = ReportWriter(settings.report_dir, job.name)
    report = writer.build(groups, plans, rejections, execution, stats, job.policy)
    path = writer.write(report)

    summary = report["summary"]
    print("=" * 70)
    print("SUMMARY")
    print("=" * 70)
    print(f"Products loaded:        {stats.total}")
    print(f"Active before:          {summary['active_before']}")
    print(f"Groups planned:         {summary['groups_planned']}")
    print(f"Groups rejected:        {summary['groups_rejected']}")
    print(f"Entries to archive:     {summary['entries_to_archive']}")
    print(f"Projected active after: {summary['projected_active_after']}")
    for status, count in sorted(summary["steps_by_status"].items()):
        print(f"Steps {status + ':':17} {count}")
    if execution.cancelled:
        print(f"Cancelled with {len(execution.not_started)} group(s) not started")
    print(f"Report: {path}")
    print()
    if dry_run and plans:
        print("To apply these changes, re-run with --execute")
    return 0


def merge_main(argv: Optional[List[str]] = None) -> int:
    return run(JOBS["merge-products"], argv)


def archive_main(argv: Optional[List[str]] = None) -> int:
    return run(JOBS["archive-duplicates"], argv)


def curated_main(argv: Optional[List[str]] = None) -> int:
    return run(JOBS["merge-curated"], argv)
