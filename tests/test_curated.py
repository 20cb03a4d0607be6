"""
Tests for hand-listed families: file parsing, handle resolution and planning
with a pinned primary.
"""
import json

import pytest

from catalog_consolidation.analyzer import GroupingEngine
from catalog_consolidation.curated import (
    FamilyConfigError,
    build_family_groups,
    load_families,
    parse_families,
)
from catalog_consolidation.executor import GROUP_APPLIED, MergeExecutor
from catalog_consolidation.models import PlanRejection, StepKind
from catalog_consolidation.planner import POLICY_CURATED, MergePlanner

from conftest import FakeCatalogClient, make_entry


COMPOSURE = {
    "title": "Dog Composure Calming Chews",
    "option_name": "Flavor",
    "primary": "dog-composure-bacon-5.64-oz",
    "members": [
        {"handle": "dog-composure-bacon-5.64-oz", "label": "Bacon"},
        {"handle": "dog-composure-chicken-4.76-oz", "label": "Chicken"},
        {"handle": "dog-composure-peanut-butter-5.64-oz", "label": "Peanut Butter"},
    ],
}


@pytest.fixture
def composure_entries():
    return [
        make_entry(1, "Dog Composure Bacon 5.64 oz", price="19.99"),
        make_entry(2, "Dog Composure Chicken 4.76 oz", price="17.99"),
        make_entry(3, "Dog Composure Peanut Butter 5.64 oz", price="19.99"),
    ]


def composure_family():
    return parse_families({"families": [COMPOSURE]})


class TestFamilyFile:

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "families.json"
        path.write_text(json.dumps({"families": [COMPOSURE]}), encoding="utf-8")
        families = load_families(path)
        assert len(families) == 1
        family = families[0]
        assert family.title == "Dog Composure Calming Chews"
        assert family.option_name == "Flavor"
        assert [m.label for m in family.members] == ["Bacon", "Chicken", "Peanut Butter"]
        assert family.key == "curated|dog-composure-bacon-5.64-oz"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FamilyConfigError, match="not found"):
            load_families(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "families.json"
        path.write_text("{families: ", encoding="utf-8")
        with pytest.raises(FamilyConfigError, match="invalid JSON"):
            load_families(path)

    @pytest.mark.parametrize("change, message", [
        ({"primary": "somewhere-else"}, "not one of its members"),
        ({"title": ""}, "'title'"),
        ({"members": COMPOSURE["members"][:1]}, "at least two members"),
        (
            {"members": COMPOSURE["members"] + [{"handle": "other", "label": "bacon"}]},
            "duplicate label",
        ),
    ])
    def test_malformed_family(self, change, message):
        with pytest.raises(FamilyConfigError, match=message):
            parse_families({"families": [{**COMPOSURE, **change}]})

    def test_handle_listed_twice(self):
        other = {**COMPOSURE, "primary": "dog-composure-chicken-4.76-oz"}
        with pytest.raises(FamilyConfigError, match="already listed"):
            parse_families({"families": [COMPOSURE, other]})

    def test_top_level_shape(self):
        with pytest.raises(FamilyConfigError):
            parse_families([COMPOSURE])


class TestResolution:

    def test_title_rules_do_not_find_flavor_and_size_titles(self, composure_entries):
        assert GroupingEngine().group(composure_entries) == []

    def test_family_resolved_by_handle(self, composure_entries):
        groups, rejections = build_family_groups(composure_family(), composure_entries)
        assert rejections == []
        group = groups[0]
        assert group.base_name == "Dog Composure Calming Chews"
        assert group.primary_id == "gid://shopify/Product/1"
        assert [m.label for m in group.members] == ["Bacon", "Chicken", "Peanut Butter"]
        assert {m.size.option_name for m in group.members} == {"Flavor"}

    def test_missing_member_is_skipped(self, composure_entries):
        groups, _ = build_family_groups(composure_family(), composure_entries[:2])
        assert [m.label for m in groups[0].members] == ["Bacon", "Chicken"]

    def test_missing_primary_rejects_family(self, composure_entries):
        groups, rejections = build_family_groups(composure_family(), composure_entries[1:])
        assert groups == []
        assert rejections == [PlanRejection(
            "curated|dog-composure-bacon-5.64-oz",
            "primary 'dog-composure-bacon-5.64-oz' not found",
        )]

    def test_fully_merged_family_has_nothing_left(self):
        entries = [
            make_entry(
                1,
                "Dog Composure Bacon 5.64 oz",
                option_name="Flavor",
                variants=[("19.99", "Bacon"), ("17.99", "Chicken"), ("19.99", "Peanut Butter")],
            ),
            make_entry(2, "Dog Composure Chicken 4.76 oz", status="ARCHIVED"),
            make_entry(3, "Dog Composure Peanut Butter 5.64 oz", status="ARCHIVED"),
        ]
        groups, rejections = build_family_groups(composure_family(), entries)
        assert groups == []
        assert rejections[0].reason == "nothing left to merge"


class TestPinnedPrimaryPlan:

    def test_pinned_primary_wins_over_cheapest(self, composure_entries):
        groups, _ = build_family_groups(composure_family(), composure_entries)
        plan = MergePlanner(POLICY_CURATED).plan(groups[0])

        assert plan.primary_id == "gid://shopify/Product/1"
        assert plan.option_name == "Flavor"
        assert [s.kind for s in plan.steps] == [
            StepKind.RENAME_OPTION,
            StepKind.UPDATE_PRIMARY_VARIANT,
            StepKind.CREATE_VARIANT,
            StepKind.CREATE_VARIANT,
            StepKind.ARCHIVE_ENTRY,
            StepKind.ARCHIVE_ENTRY,
            StepKind.RETITLE_PRIMARY,
        ]
        assert plan.steps[1].payload["value"] == "Bacon"
        assert [s.payload["value"] for s in plan.steps_of(StepKind.CREATE_VARIANT)] == [
            "Chicken",
            "Peanut Butter",
        ]
        assert plan.steps[-1].payload["to"] == "Dog Composure Calming Chews"

    def test_group_without_pinned_member_is_rejected(self, composure_entries):
        groups, _ = build_family_groups(composure_family(), composure_entries)
        group = groups[0]
        group.primary_id = "gid://shopify/Product/999"
        result = MergePlanner(POLICY_CURATED).plan(group)
        assert isinstance(result, PlanRejection)
        assert "pinned primary" in result.reason

    def test_partial_merge_replans_remaining_steps(self):
        entries = [
            make_entry(
                1,
                "Dog Composure Bacon 5.64 oz",
                option_name="Flavor",
                variants=[("19.99", "Bacon"), ("17.99", "Chicken"), ("19.99", "Peanut Butter")],
            ),
            make_entry(2, "Dog Composure Chicken 4.76 oz", status="ARCHIVED"),
            make_entry(3, "Dog Composure Peanut Butter 5.64 oz", price="19.99"),
        ]
        groups, _ = build_family_groups(composure_family(), entries)
        plan = MergePlanner(POLICY_CURATED).plan(groups[0])
        live = [(s.kind, s.entry_id) for s in plan.steps if not s.noop]
        assert live == [
            (StepKind.ARCHIVE_ENTRY, "gid://shopify/Product/3"),
            (StepKind.RETITLE_PRIMARY, "gid://shopify/Product/1"),
        ]

    def test_apply(self, composure_entries):
        groups, _ = build_family_groups(composure_family(), composure_entries)
        plans, rejections = MergePlanner(POLICY_CURATED).plan_all(groups)
        client = FakeCatalogClient()
        run = MergeExecutor(client=client, dry_run=False, sleep=lambda s: None).execute_all(plans)

        assert rejections == []
        assert run.status_of(plans[0].group_key) == GROUP_APPLIED
        assert client.write_calls[0] == (
            "rename_option", "gid://shopify/Product/1", "gid://shopify/ProductOption/1", "Flavor"
        )
        archived = [c[1] for c in client.write_calls if c[0] == "update_entry" and c[2] == {"status": "ARCHIVED"}]
        assert archived == ["gid://shopify/Product/2", "gid://shopify/Product/3"]
