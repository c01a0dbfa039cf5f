"""Search-group planning.

The catalog is partitioned into a handful of topical groups; each group costs one web search
and one batched judge call, so external call volume is bounded by the group count rather than
the catalog size.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from assessor.logging import get_logger
from assessor.models.criterion import Criterion, SearchGroup

logger = get_logger(__name__)


@dataclass(frozen=True)
class _GroupSpec:
    name: str
    search_query: str


# Declared order is processing order.
_GROUP_SPECS: dict[str, _GroupSpec] = {
    "legal_privacy": _GroupSpec(
        name="Legal & Privacy Compliance",
        search_query="legal compliance privacy protection data protection GDPR regulation personal data",
    ),
    "security_risk": _GroupSpec(
        name="Security & Risk Management",
        search_query=(
            "security vulnerability encryption access control authentication cyber security data breach"
        ),
    ),
    "ai_ethics": _GroupSpec(
        name="AI Ethics & Responsibility",
        search_query="AI ethics bias fairness responsible AI algorithmic fairness ethical discrimination",
    ),
    "technical_quality": _GroupSpec(
        name="Technical Performance & Quality",
        search_query=(
            "performance accuracy reliability scalability quality assurance technical validation robustness"
        ),
    ),
    "transparency_governance": _GroupSpec(
        name="Transparency & Governance",
        search_query=(
            "transparency explainability accountability data governance audit trail model interpretability"
        ),
    ),
    "business_operations": _GroupSpec(
        name="Business & Operations",
        search_query="cost ROI vendor management integration interoperability business value operational",
    ),
    "sustainability": _GroupSpec(
        name="Sustainability & Environmental Impact",
        search_query="sustainability environmental impact carbon footprint green AI energy efficiency",
    ),
}

# Single source of truth for category -> group. Keyed by category, so disjoint by construction.
CATEGORY_TO_GROUP: dict[str, str] = {
    "Legal & Privacy": "legal_privacy",
    "Security": "security_risk",
    "AI Ethics": "ai_ethics",
    "Technical Soundness": "technical_quality",
    "Transparency & Accountability": "transparency_governance",
    "Data Governance": "transparency_governance",
    "Cost & ROI": "business_operations",
    "Vendor Management": "business_operations",
    "Integration & Interoperability": "business_operations",
    "Sustainability": "sustainability",
}


def _build_groups() -> tuple[SearchGroup, ...]:
    unknown = set(CATEGORY_TO_GROUP.values()) - set(_GROUP_SPECS)
    if unknown:
        raise RuntimeError(f"category mapping references undefined groups: {sorted(unknown)}")

    groups: list[SearchGroup] = []
    for group_id, spec in _GROUP_SPECS.items():
        categories = tuple(c for c, g in CATEGORY_TO_GROUP.items() if g == group_id)
        groups.append(
            SearchGroup(
                id=group_id,
                name=spec.name,
                categories=categories,
                search_query=spec.search_query,
            )
        )
    return tuple(groups)


SEARCH_GROUPS: tuple[SearchGroup, ...] = _build_groups()


@dataclass(frozen=True)
class PlannedGroup:
    """A search group together with the catalog criteria it covers."""

    group: SearchGroup
    criteria: tuple[Criterion, ...]


def validate_category_mapping(
    catalog: Iterable[Criterion],
    groups: Sequence[SearchGroup] = SEARCH_GROUPS,
) -> set[str]:
    """Check that every catalog category maps to exactly one group.

    Unmapped categories are logged and returned; their criteria are skipped by the planner.
    Categories claimed by more than one group are an error in the group table itself.

    Returns:
        The set of unmapped categories.

    Raises:
        ValueError: If a category appears in more than one group.
    """

    owner: dict[str, str] = {}
    for g in groups:
        for c in g.categories:
            if c in owner and owner[c] != g.id:
                raise ValueError(f"category {c!r} mapped to both {owner[c]!r} and {g.id!r}")
            owner[c] = g.id

    unmapped: set[str] = set()
    for criterion in catalog:
        if criterion.category not in owner and criterion.category not in unmapped:
            unmapped.add(criterion.category)
            logger.warning(
                "Category has no search group; its criteria will be skipped",
                extra={"category": criterion.category},
            )
    return unmapped


def plan_groups(
    catalog: Sequence[Criterion],
    *,
    max_groups: int,
    groups: Sequence[SearchGroup] = SEARCH_GROUPS,
) -> list[PlannedGroup]:
    """Partition the catalog into search groups.

    Args:
        catalog: All criteria.
        max_groups: Maximum number of groups to process; non-empty groups past the cap are
            left unprocessed.
        groups: Group table, in processing order.

    Returns:
        Non-empty groups in declared order, each with its criteria sorted by display order.
    """

    validate_category_mapping(catalog, groups)

    planned: list[PlannedGroup] = []
    for g in groups:
        members = sorted(
            (c for c in catalog if c.category in g.categories),
            key=lambda c: (c.order, c.id),
        )
        if not members:
            logger.warning("No criteria for search group; skipping", extra={"group": g.id})
            continue
        if len(planned) >= max_groups:
            logger.warning(
                "Search group cap reached; group left unprocessed",
                extra={"group": g.id, "max_groups": max_groups, "criteria": len(members)},
            )
            continue
        planned.append(PlannedGroup(group=g, criteria=tuple(members)))
    return planned


def build_search_query(model_name: str, vendor: str, group: SearchGroup) -> str:
    """Compose the web search query for one group."""

    parts = [model_name.strip(), vendor.strip(), group.search_query]
    return " ".join(p for p in parts if p)
