"""Tests for batched judgement and response parsing."""

from __future__ import annotations

import asyncio
import random

import pytest

from assessor.evaluation.judge import (
    ANALYSIS_FAILED_RATIONALE,
    JudgementEngine,
    parse_judgements,
)
from assessor.models.evidence import Verdict
from assessor.planning.groups import SEARCH_GROUPS
from conftest import FakeChatModel, make_criterion, make_docs

GROUP = SEARCH_GROUPS[1]


def _criteria(n: int = 3):
    return [make_criterion(f"sec-{i}", order=i) for i in range(n)]


def _entry(verdict: str = "compliant", **kw):
    return {"verdict": verdict, "rationale": kw.pop("rationale", "ok"), "evidences": kw.pop("evidences", [])}


def test_no_evidence_skips_the_model_call() -> None:
    """Empty evidence yields unknown for every criterion without calling the judge."""

    llm = FakeChatModel({"ignored": True})
    engine = JudgementEngine(llm)
    criteria = _criteria()

    out = asyncio.run(engine.judge(criteria, [], "TestModel", GROUP))

    assert llm.json_calls == []
    assert set(out) == {c.id for c in criteria}
    for c in criteria:
        assert out[c.id].verdict is Verdict.UNKNOWN
        assert "No evidence" in out[c.id].rationale
        assert c.name in out[c.id].rationale
        assert out[c.id].evidences == []


def test_one_call_per_group_covers_all_criteria() -> None:
    criteria = _criteria()
    llm = FakeChatModel({c.id: _entry("non_compliant") for c in criteria})
    engine = JudgementEngine(llm)

    out = asyncio.run(engine.judge(criteria, make_docs(3), "TestModel", GROUP))

    assert len(llm.json_calls) == 1
    assert [c.id for c in criteria] == list(out)
    assert all(j.verdict is Verdict.NON_COMPLIANT for j in out.values())

    prompt = llm.json_calls[0][-1].content
    assert "TestModel" in prompt
    for c in criteria:
        assert c.id in prompt
    assert "https://example.org/2" in prompt


def test_prompt_truncates_document_content() -> None:
    docs = make_docs(1)
    docs[0] = docs[0].model_copy(update={"content": "x" * 50 + "TAIL"})
    engine = JudgementEngine(None, content_max_chars=50)

    prompt = engine.render_prompt(_criteria(1), docs, "M", GROUP)

    assert "x" * 50 in prompt
    assert "TAIL" not in prompt


def test_partial_response_keeps_valid_entries() -> None:
    """One missing entry should not cost the other criteria their verdicts."""

    criteria = _criteria(4)
    raw = {c.id: _entry("needs_improvement") for c in criteria[:3]}

    out = parse_judgements(raw, criteria)

    assert [out[c.id].verdict for c in criteria[:3]] == [Verdict.NEEDS_IMPROVEMENT] * 3
    assert out[criteria[3].id].verdict is Verdict.UNKNOWN
    assert out[criteria[3].id].rationale == ANALYSIS_FAILED_RATIONALE


def test_invalid_verdict_marks_only_that_entry_failed() -> None:
    criteria = _criteria(2)
    raw = {criteria[0].id: _entry("maybe"), criteria[1].id: _entry("compliant")}

    out = parse_judgements(raw, criteria)

    assert out[criteria[0].id].rationale == ANALYSIS_FAILED_RATIONALE
    assert out[criteria[1].id].verdict is Verdict.COMPLIANT


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("○", Verdict.COMPLIANT),
        ("×", Verdict.NON_COMPLIANT),
        ("要改善", Verdict.NEEDS_IMPROVEMENT),
        (None, Verdict.UNKNOWN),
        ("Non-Compliant", Verdict.NON_COMPLIANT),
    ],
)
def test_legacy_verdict_spellings(raw, expected) -> None:
    criteria = _criteria(1)
    out = parse_judgements({criteria[0].id: {"judgement": raw, "comment": "legacy"}}, criteria)
    assert out[criteria[0].id].verdict is expected
    assert out[criteria[0].id].rationale == "legacy"


def test_evidence_citations_are_normalised() -> None:
    criteria = _criteria(1)
    raw = {
        criteria[0].id: _entry(
            evidences=[
                {"url": "https://a", "title": "A", "snippet": "s" * 400, "confidence": 1.7},
                {"title": "missing url"},
                "not a mapping",
            ]
        )
    }

    ev = parse_judgements(raw, criteria)[criteria[0].id].evidences

    assert len(ev) == 1
    assert len(ev[0].snippet) == 300
    assert ev[0].confidence == 1.0


def test_single_wrapper_key_is_unwrapped() -> None:
    criteria = _criteria(2)
    raw = {"assessments": {c.id: _entry() for c in criteria}}
    out = parse_judgements(raw, criteria)
    assert all(j.verdict is Verdict.COMPLIANT for j in out.values())


def test_model_failure_marks_group_failed() -> None:
    criteria = _criteria()
    engine = JudgementEngine(FakeChatModel(RuntimeError("rate limited")))

    out = asyncio.run(engine.judge(criteria, make_docs(), "M", GROUP))

    assert all(j.verdict is Verdict.UNKNOWN for j in out.values())
    assert all(j.rationale == ANALYSIS_FAILED_RATIONALE for j in out.values())


def test_model_timeout_marks_group_failed() -> None:
    criteria = _criteria(2)
    llm = FakeChatModel({c.id: _entry() for c in criteria}, delay_s=1.0)
    engine = JudgementEngine(llm, timeout_s=0.01)

    out = asyncio.run(engine.judge(criteria, make_docs(), "M", GROUP))

    assert all(j.rationale == ANALYSIS_FAILED_RATIONALE for j in out.values())


def test_mock_mode_cites_at_most_two_documents() -> None:
    engine = JudgementEngine(None, rng=random.Random(7))
    criteria = _criteria(5)

    out = asyncio.run(engine.judge(criteria, make_docs(4), "M", GROUP))

    assert engine.is_mock
    assert len(out) == 5
    for j in out.values():
        assert j.verdict is not Verdict.UNKNOWN
        assert len(j.evidences) <= 2
        assert all(0.8 <= e.confidence <= 1.0 for e in j.evidences)


def test_empty_criteria_returns_nothing() -> None:
    llm = FakeChatModel()
    assert asyncio.run(JudgementEngine(llm).judge([], make_docs(), "M", GROUP)) == {}
    assert llm.json_calls == []
