"""Tests for category and overall summaries."""

from __future__ import annotations

import asyncio

from assessor.evaluation.summarizer import Aggregator, compute_stats
from assessor.models.evidence import Judgement, Verdict
from conftest import FakeChatModel, make_criterion


def _judgements() -> dict[str, Judgement]:
    return {
        "a": Judgement(verdict=Verdict.COMPLIANT, rationale="ok"),
        "b": Judgement(verdict=Verdict.NON_COMPLIANT, rationale="no"),
        "c": Judgement.unknown("no data"),
    }


CATALOG = [
    make_criterion("a", "Security", order=1),
    make_criterion("b", "Security", order=2),
    make_criterion("c", "AI Ethics", order=3),
    make_criterion("d", "Sustainability", order=4),
]


def test_compute_stats_counts_each_verdict() -> None:
    stats = compute_stats(_judgements().values())
    assert (stats.total, stats.compliant, stats.non_compliant, stats.needs_improvement, stats.unknown) == (
        3,
        1,
        1,
        0,
        1,
    )


def test_mock_summaries_report_counts() -> None:
    categories, overall = asyncio.run(Aggregator(None).summarize(CATALOG, _judgements(), "TestModel"))

    assert set(categories) == {"Security", "AI Ethics"}
    assert "2 items evaluated" in categories["Security"]
    assert "1 compliant" in categories["Security"]
    assert "TestModel" in overall
    assert "3 items evaluated across 2 categories" in overall


def test_categories_without_judgements_are_omitted() -> None:
    categories, _ = asyncio.run(Aggregator(None).summarize(CATALOG, {}, "M"))
    assert categories == {}


def test_model_text_is_used_when_configured() -> None:
    llm = FakeChatModel(text="  Strong encryption, weak audit trail.  ")
    categories, overall = asyncio.run(Aggregator(llm).summarize(CATALOG, _judgements(), "M"))

    assert categories["Security"] == "Strong encryption, weak audit trail."
    assert overall == "Strong encryption, weak audit trail."
    # one call per non-empty category plus the overall summary
    assert len(llm.text_calls) == 3


def test_summary_failures_fall_back_to_fixed_text() -> None:
    llm = FakeChatModel(text_error=RuntimeError("quota"))
    categories, overall = asyncio.run(Aggregator(llm).summarize(CATALOG, _judgements(), "M"))

    assert categories["Security"] == "Summary generation failed for Security"
    assert overall == "Overall assessment generation failed for M"
