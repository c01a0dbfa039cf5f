"""Tests for search-group planning."""

from __future__ import annotations

import logging

import pytest

from assessor.models.criterion import SearchGroup
from assessor.planning.groups import (
    CATEGORY_TO_GROUP,
    SEARCH_GROUPS,
    build_search_query,
    plan_groups,
    validate_category_mapping,
)
from assessor.storage.repository import load_catalog
from conftest import make_criterion


def test_bundled_catalog_is_fully_mapped() -> None:
    """Every bundled category maps to exactly one of the seven groups."""

    catalog = load_catalog()
    assert len(catalog) == 40
    assert validate_category_mapping(catalog) == set()

    planned = plan_groups(catalog, max_groups=7)
    assert [p.group.id for p in planned] == [g.id for g in SEARCH_GROUPS]
    assert sum(len(p.criteria) for p in planned) == 40

    seen = [c.id for p in planned for c in p.criteria]
    assert len(seen) == len(set(seen))


def test_group_table_is_disjoint() -> None:
    owners: dict[str, str] = {}
    for g in SEARCH_GROUPS:
        for c in g.categories:
            assert c not in owners
            owners[c] = g.id
    assert owners == CATEGORY_TO_GROUP


def test_overlapping_groups_are_rejected() -> None:
    groups = [
        SearchGroup(id="a", name="A", categories=("Security",), search_query="a"),
        SearchGroup(id="b", name="B", categories=("Security",), search_query="b"),
    ]
    with pytest.raises(ValueError):
        validate_category_mapping([make_criterion("c1")], groups)


def test_unmapped_category_is_skipped_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    catalog = [make_criterion("c1", "Security"), make_criterion("c2", "Astrology")]

    with caplog.at_level(logging.WARNING):
        planned = plan_groups(catalog, max_groups=7)

    assert [c.id for p in planned for c in p.criteria] == ["c1"]
    assert any("no search group" in r.getMessage() for r in caplog.records)


def test_empty_groups_are_skipped() -> None:
    catalog = [make_criterion("c1", "Sustainability"), make_criterion("c2", "Security")]
    planned = plan_groups(catalog, max_groups=7)
    assert [p.group.id for p in planned] == ["security_risk", "sustainability"]


def test_group_cap_limits_processed_groups() -> None:
    """Non-empty groups past the cap are left unprocessed."""

    planned = plan_groups(load_catalog(), max_groups=3)
    assert [p.group.id for p in planned] == ["legal_privacy", "security_risk", "ai_ethics"]


def test_criteria_sorted_by_display_order() -> None:
    catalog = [
        make_criterion("late", "Security", order=9),
        make_criterion("early", "Security", order=1),
    ]
    planned = plan_groups(catalog, max_groups=7)
    assert [c.id for c in planned[0].criteria] == ["early", "late"]


def test_build_search_query_skips_empty_vendor() -> None:
    group = SEARCH_GROUPS[0]
    assert build_search_query("GPT-4o", "", group) == f"GPT-4o {group.search_query}"
    assert build_search_query("GPT-4o", "OpenAI", group).startswith("GPT-4o OpenAI ")
