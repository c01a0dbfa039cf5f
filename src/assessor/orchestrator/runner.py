"""Investigation pipeline.

One run turns ``{model_name, vendor}`` into a persisted, evidenced, multi-category report:

    initialize -> (per search group: search -> judge) -> summarize -> persist

Groups are processed sequentially. Each group's judgements are persisted as soon as they are
available, so a failure or cancellation later in the run keeps everything judged so far.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from assessor.config import Settings
from assessor.errors import InvestigationError, RunAlreadyFinishedError, RunNotFoundError
from assessor.evaluation.judge import ANALYSIS_FAILED_RATIONALE, JudgementEngine
from assessor.evaluation.summarizer import Aggregator, compute_stats
from assessor.llm.client import ChatModel, get_llm_client
from assessor.logging import criterion_context, get_logger, run_context, set_step
from assessor.models.assessment import (
    AssessmentRecord,
    AssessmentStatus,
    InvestigationRequest,
    InvestigationResult,
    ModelRecord,
)
from assessor.models.criterion import Criterion, CurrentItem
from assessor.models.evidence import Judgement
from assessor.models.progress import OverallStatus, StepStatus
from assessor.planning.groups import PlannedGroup, build_search_query, plan_groups
from assessor.progress.tracker import ProgressTracker
from assessor.storage.base import KeyValueStore
from assessor.storage.repository import AssessmentRepository
from assessor.tools.web_search import EvidenceRetriever
from assessor.utils.ids import new_id

logger = get_logger(__name__)

STEP_INITIALIZE = "initialize"
STEP_SUMMARIZE = "summarize"
STEP_PERSIST = "persist"


def search_step_id(group_id: str) -> str:
    return f"search:{group_id}"


def judge_step_id(group_id: str) -> str:
    return f"judge:{group_id}"


@dataclass
class _RunHandle:
    request: InvestigationRequest
    model: ModelRecord
    catalog: list[Criterion]
    plan: list[PlannedGroup]
    cancelled: bool = False
    groups_done: int = 0
    step: str = STEP_INITIALIZE
    judgements: dict[str, Judgement] = field(default_factory=dict)


class Orchestrator:
    """Owns investigation runs and their progress records."""

    def __init__(
        self,
        *,
        settings: Settings,
        repository: AssessmentRepository,
        tracker: ProgressTracker,
        retriever: EvidenceRetriever,
        judge: JudgementEngine,
        aggregator: Aggregator,
    ) -> None:
        self._settings = settings
        self._repo = repository
        self._tracker = tracker
        self._retriever = retriever
        self._judge = judge
        self._aggregator = aggregator
        self._runs: dict[str, _RunHandle] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: KeyValueStore,
        *,
        llm: ChatModel | None = None,
        retriever: EvidenceRetriever | None = None,
    ) -> "Orchestrator":
        """Wire the default components.

        ``llm`` and ``retriever`` default to what the settings configure (live or mock).
        """

        if llm is None:
            llm = get_llm_client(settings)
        return cls(
            settings=settings,
            repository=AssessmentRepository(store),
            tracker=ProgressTracker(store, ttl_seconds=settings.progress_ttl_s),
            retriever=retriever or EvidenceRetriever.from_settings(settings),
            judge=JudgementEngine.from_settings(settings, llm),
            aggregator=Aggregator.from_settings(settings, llm),
        )

    @property
    def repository(self) -> AssessmentRepository:
        return self._repo

    @property
    def tracker(self) -> ProgressTracker:
        return self._tracker

    def is_active(self, run_id: str) -> bool:
        return run_id in self._runs

    async def submit(self, request: InvestigationRequest) -> str:
        """Register a run: model record, pending assessment, audit entry and progress record.

        Returns:
            The run id, which is also the assessment id.

        Raises:
            InvestigationError: If the criteria catalog is empty.
        """

        await self._repo.seed_criteria()
        catalog = await self._repo.list_criteria()
        if not catalog:
            raise InvestigationError("criteria catalog is empty")

        plan = plan_groups(catalog, max_groups=self._settings.max_search_groups)
        total_items = sum(len(p.criteria) for p in plan)

        model = await self._repo.create_model(request.model_name, request.vendor)
        run_id = new_id()
        await self._repo.save_assessment(
            AssessmentRecord(
                id=run_id,
                model_id=model.id,
                model_name=model.name,
                vendor=model.vendor,
                summary=f"Automated assessment for {model.name}",
            )
        )
        await self._repo.add_audit_log(
            user="AI",
            action="CREATE_ASSESSMENT",
            entity_type="assessment",
            entity_id=run_id,
            changes={
                "model_name": request.model_name,
                "vendor": request.vendor,
                "item_count": total_items,
            },
        )

        steps: list[tuple[str, str]] = [(STEP_INITIALIZE, "Initialize")]
        for p in plan:
            steps.append((search_step_id(p.group.id), f"Search: {p.group.name}"))
            steps.append((judge_step_id(p.group.id), f"Judge: {p.group.name}"))
        steps.append((STEP_SUMMARIZE, "Generate summaries"))
        steps.append((STEP_PERSIST, "Save results"))
        await self._tracker.create(run_id, model.name, steps, total_items=total_items)

        self._runs[run_id] = _RunHandle(request=request, model=model, catalog=catalog, plan=plan)
        logger.info(
            "Investigation submitted",
            extra={"run": run_id, "model_name": model.name, "groups": len(plan), "criteria": total_items},
        )
        return run_id

    async def cancel(self, run_id: str) -> None:
        """Ask a run to stop before its next search group.

        Calls already in flight finish and their results are persisted.

        Raises:
            RunNotFoundError: If no such run exists.
            RunAlreadyFinishedError: If the run is no longer active.
        """

        handle = self._runs.get(run_id)
        if handle is None:
            if await self._tracker.get(run_id) is None and await self._repo.get_assessment(run_id) is None:
                raise RunNotFoundError(run_id)
            raise RunAlreadyFinishedError(f"run already finished: {run_id}")
        handle.cancelled = True
        logger.info("Cancellation requested", extra={"run": run_id})

    async def investigate(self, request: InvestigationRequest) -> tuple[str, InvestigationResult | None]:
        """Submit and run to completion in the current task."""

        run_id = await self.submit(request)
        return run_id, await self.run(run_id)

    async def run(self, run_id: str) -> InvestigationResult | None:
        """Execute a submitted run.

        Returns:
            The result, or ``None`` if the run failed. Failures never propagate: they end in
            an ``error`` progress state and a ``failed`` assessment.

        Raises:
            RunNotFoundError: If ``run_id`` was never submitted or already ran.
            asyncio.CancelledError: Re-raised after the run is recorded as failed when its task
                is cancelled.
        """

        handle = self._runs.get(run_id)
        if handle is None:
            raise RunNotFoundError(run_id)

        with run_context(run_id=run_id, step=STEP_INITIALIZE):
            try:
                await self._tracker.advance_step(run_id, STEP_INITIALIZE, StepStatus.RUNNING)
                assessment = await self._require_assessment(run_id)
                assessment.status = AssessmentStatus.RUNNING
                await self._repo.save_assessment(assessment)
                await self._tracker.advance_step(
                    run_id,
                    STEP_INITIALIZE,
                    StepStatus.COMPLETED,
                    f"{sum(len(p.criteria) for p in handle.plan)} criteria in {len(handle.plan)} search groups",
                )

                for planned in handle.plan:
                    if handle.cancelled:
                        logger.info("Run cancelled; skipping remaining groups", extra={"done": handle.groups_done})
                        break
                    await self._process_group(run_id, handle, planned)
                    handle.groups_done += 1

                handle.step = STEP_SUMMARIZE
                set_step(handle.step)
                await self._tracker.advance_step(run_id, STEP_SUMMARIZE, StepStatus.RUNNING)
                category_summaries, overall = await self._aggregator.summarize(
                    handle.catalog, handle.judgements, handle.model.name
                )
                await self._tracker.advance_step(
                    run_id,
                    STEP_SUMMARIZE,
                    StepStatus.COMPLETED,
                    f"{len(category_summaries)} category summaries",
                )

                result = InvestigationResult(
                    judgements=dict(handle.judgements),
                    category_summaries=category_summaries,
                    overall_summary=overall,
                    stats=compute_stats(handle.judgements.values()),
                )

                handle.step = STEP_PERSIST
                set_step(handle.step)
                await self._tracker.advance_step(run_id, STEP_PERSIST, StepStatus.RUNNING)
                assessment.summary = overall
                assessment.category_summaries = category_summaries
                assessment.stats = result.stats
                assessment.status = AssessmentStatus.CANCELLED if handle.cancelled else AssessmentStatus.COMPLETED
                await self._repo.save_assessment(assessment)
                await self._tracker.advance_step(run_id, STEP_PERSIST, StepStatus.COMPLETED)

                if handle.cancelled:
                    await self._tracker.finalize(
                        run_id,
                        OverallStatus.ERROR,
                        f"Investigation cancelled after {handle.groups_done} of {len(handle.plan)} "
                        f"search groups; {len(handle.judgements)} criteria assessed.",
                    )
                else:
                    await self._tracker.finalize(run_id, OverallStatus.COMPLETED, overall)
                logger.info(
                    "Investigation finished",
                    extra={
                        "status": assessment.status.value,
                        "judgements": len(handle.judgements),
                        "groups": handle.groups_done,
                    },
                )
                return result
            except asyncio.CancelledError:
                logger.warning("Investigation task cancelled", extra={"failed_step": handle.step})
                await asyncio.shield(self._fail(run_id, handle, handle.step))
                raise
            except Exception:
                logger.exception("Investigation failed", extra={"failed_step": handle.step})
                await self._fail(run_id, handle, handle.step)
                return None
            finally:
                self._runs.pop(run_id, None)

    async def _process_group(self, run_id: str, handle: _RunHandle, planned: PlannedGroup) -> None:
        group = planned.group
        criteria = list(planned.criteria)
        search_step = search_step_id(group.id)
        judge_step = judge_step_id(group.id)

        handle.step = search_step
        set_step(search_step)
        query = build_search_query(handle.model.name, handle.model.vendor, group)
        await self._tracker.set_current_item(run_id, CurrentItem.from_criterion(criteria[0]))
        await self._tracker.advance_step(run_id, search_step, StepStatus.RUNNING, query)
        documents = await self._retriever.search(query)
        await self._tracker.advance_step(
            run_id, search_step, StepStatus.COMPLETED, f"{len(documents)} unique documents"
        )

        handle.step = judge_step
        set_step(judge_step)
        await self._tracker.advance_step(
            run_id, judge_step, StepStatus.RUNNING, f"Assessing {len(criteria)} criteria"
        )
        judged = await self._judge.judge(criteria, documents, handle.model.name, group)

        for criterion in criteria:
            judgement = judged.get(criterion.id) or Judgement.unknown(ANALYSIS_FAILED_RATIONALE)
            with criterion_context(criterion.id):
                await self._tracker.set_current_item(run_id, CurrentItem.from_criterion(criterion))
                await self._repo.add_assessment_item(run_id, criterion.id, judgement)
                handle.judgements[criterion.id] = judgement
                await self._tracker.increment_completed(run_id)
                await self._tracker.clear_current_item(run_id)
                logger.debug("Criterion assessed", extra={"verdict": judgement.verdict.value})

        stats = compute_stats(judged.values())
        await self._tracker.advance_step(
            run_id,
            judge_step,
            StepStatus.COMPLETED,
            f"{stats.compliant} compliant, {stats.non_compliant} non-compliant, "
            f"{stats.needs_improvement} needs improvement, {stats.unknown} unknown",
        )

    async def _require_assessment(self, run_id: str) -> AssessmentRecord:
        assessment = await self._repo.get_assessment(run_id)
        if assessment is None:
            raise InvestigationError(f"assessment record missing for run {run_id}")
        return assessment

    async def _fail(self, run_id: str, handle: _RunHandle, step: str) -> None:
        message = (
            f"Investigation failed during '{step}'. "
            f"Results for {len(handle.judgements)} criteria were saved before the failure."
        )
        # The assessment is marked failed before progress turns terminal
        try:
            assessment = await self._repo.get_assessment(run_id)
            if assessment is not None:
                assessment.status = AssessmentStatus.FAILED
                assessment.error = message
                if handle.judgements:
                    assessment.stats = compute_stats(handle.judgements.values())
                await self._repo.save_assessment(assessment)
        except Exception:
            logger.exception("Could not mark assessment as failed")
        try:
            await self._tracker.finalize(run_id, OverallStatus.ERROR, message)
        except Exception:
            logger.exception("Could not record error progress state")
