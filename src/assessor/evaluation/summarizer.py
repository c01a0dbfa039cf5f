"""Category and overall narrative summaries."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from assessor.config import Settings
from assessor.llm.client import ChatMessage, ChatModel
from assessor.logging import get_logger
from assessor.models.assessment import ComplianceStats
from assessor.models.criterion import Criterion
from assessor.models.evidence import Judgement, Verdict

logger = get_logger(__name__)

CATEGORY_PROMPT = """Generate a concise summary (max 300 characters) for the "{category}" \
category assessment of the LLM model "{model_name}".

Assessment results:
{results}

Provide a brief summary highlighting key strengths, weaknesses, and overall status for this category."""

OVERALL_PROMPT = """Generate an overall security assessment summary (max 500 characters) for the \
LLM model "{model_name}".

Category summaries:
{summaries}

Statistics:
- Total items assessed: {stats.total}
- Compliant: {stats.compliant}
- Non-compliant: {stats.non_compliant}
- Needs improvement: {stats.needs_improvement}
- Insufficient data: {stats.unknown}

Provide a comprehensive overall assessment highlighting the model's security posture, main \
strengths, key risks, and recommendations."""


@dataclass(frozen=True)
class TaggedJudgement:
    """A judgement together with the criterion it answers."""

    criterion: Criterion
    judgement: Judgement


def compute_stats(judgements: Iterable[Judgement]) -> ComplianceStats:
    stats = ComplianceStats()
    for j in judgements:
        stats.total += 1
        if j.verdict is Verdict.COMPLIANT:
            stats.compliant += 1
        elif j.verdict is Verdict.NON_COMPLIANT:
            stats.non_compliant += 1
        elif j.verdict is Verdict.NEEDS_IMPROVEMENT:
            stats.needs_improvement += 1
        else:
            stats.unknown += 1
    return stats


def _format_counts(stats: ComplianceStats) -> str:
    return (
        f"{stats.compliant} compliant, {stats.non_compliant} non-compliant, "
        f"{stats.needs_improvement} needing improvement, {stats.unknown} with insufficient data"
    )


class Aggregator:
    """Rolls judgements up into per-category and overall narratives."""

    def __init__(self, llm: ChatModel | None, *, timeout_s: float = 30.0) -> None:
        self._llm = llm
        self._timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings: Settings, llm: ChatModel | None) -> "Aggregator":
        return cls(llm, timeout_s=settings.provider_timeout_s)

    async def summarize_category(
        self,
        category: str,
        judgements: Sequence[TaggedJudgement],
        model_name: str,
    ) -> str:
        stats = compute_stats(t.judgement for t in judgements)
        if self._llm is None:
            return (
                f"{category} assessment for {model_name}: {stats.total} items evaluated; "
                f"{_format_counts(stats)}."
            )

        results = "\n".join(
            f"- {t.criterion.name}: {t.judgement.verdict.value}: {t.judgement.rationale}"
            for t in judgements
        )
        prompt = CATEGORY_PROMPT.format(category=category, model_name=model_name, results=results)
        try:
            text = await asyncio.wait_for(
                self._llm.complete([ChatMessage(role="user", content=prompt)], max_tokens=150),
                timeout=self._timeout_s,
            )
        except Exception:
            logger.exception("Category summary failed", extra={"category": category})
            return f"Summary generation failed for {category}"
        return text.strip() or f"Summary generation failed for {category}"

    async def summarize_overall(
        self,
        category_summaries: Mapping[str, str],
        judgements: Sequence[Judgement],
        model_name: str,
    ) -> str:
        stats = compute_stats(judgements)
        if self._llm is None:
            return (
                f"Overall assessment for {model_name}: {stats.total} items evaluated across "
                f"{len(category_summaries)} categories; {_format_counts(stats)}."
            )

        summaries = "\n".join(f"{cat}: {text}" for cat, text in category_summaries.items())
        prompt = OVERALL_PROMPT.format(model_name=model_name, summaries=summaries, stats=stats)
        try:
            text = await asyncio.wait_for(
                self._llm.complete([ChatMessage(role="user", content=prompt)], max_tokens=250),
                timeout=self._timeout_s,
            )
        except Exception:
            logger.exception("Overall summary failed", extra={"model_name": model_name})
            return f"Overall assessment generation failed for {model_name}"
        return text.strip() or f"Overall assessment generation failed for {model_name}"

    async def summarize(
        self,
        catalog: Sequence[Criterion],
        judgements: Mapping[str, Judgement],
        model_name: str,
    ) -> tuple[dict[str, str], str]:
        """Build the category summary map and the overall summary.

        Categories without any judgement are omitted from the map.
        """

        by_category: dict[str, list[TaggedJudgement]] = {}
        for criterion in sorted(catalog, key=lambda c: (c.order, c.id)):
            judgement = judgements.get(criterion.id)
            if judgement is None:
                continue
            by_category.setdefault(criterion.category, []).append(
                TaggedJudgement(criterion=criterion, judgement=judgement)
            )

        category_summaries: dict[str, str] = {}
        for category, tagged in by_category.items():
            category_summaries[category] = await self.summarize_category(category, tagged, model_name)
            logger.info("Category summary generated", extra={"category": category, "items": len(tagged)})

        overall = await self.summarize_overall(category_summaries, list(judgements.values()), model_name)
        return category_summaries, overall
