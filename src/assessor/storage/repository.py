"""Typed access to the assessment collections."""

from __future__ import annotations

import json
from collections.abc import Mapping
from importlib import resources
from pathlib import Path
from typing import Any

from pydantic import BaseModel, TypeAdapter

from assessor.logging import get_logger
from assessor.models.assessment import (
    AssessmentItem,
    AssessmentRecord,
    AssessmentView,
    AuditLog,
    ModelRecord,
    ResultItemView,
    utcnow,
)
from assessor.models.criterion import Criterion
from assessor.models.evidence import Judgement
from assessor.storage.base import Collection, KeyValueStore
from assessor.utils.ids import new_id

logger = get_logger(__name__)

_CRITERIA_ADAPTER = TypeAdapter(list[Criterion])


def load_catalog(path: Path | None = None) -> list[Criterion]:
    """Load the criteria catalog from JSON (the packaged one by default)."""

    if path is None:
        text = resources.files("assessor.data").joinpath("criteria.json").read_text(encoding="utf-8")
    else:
        text = path.read_text(encoding="utf-8")
    return _CRITERIA_ADAPTER.validate_python(json.loads(text))


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json")


class AssessmentRepository:
    """Models, criteria, assessments, items and audit logs on top of a key-value store."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # -------- Criteria --------

    async def list_criteria(self) -> list[Criterion]:
        docs = await self._store.list(Collection.CRITERIA)
        criteria = [Criterion.model_validate(d) for d in docs]
        return sorted(criteria, key=lambda c: (c.order, c.id))

    async def seed_criteria(self, catalog: list[Criterion] | None = None) -> int:
        """Seed the catalog if the collection is empty.

        Returns:
            Number of criteria written (0 when already seeded).
        """

        existing = await self._store.list(Collection.CRITERIA)
        if existing:
            return 0
        items = catalog if catalog is not None else load_catalog()
        for c in items:
            await self._store.put(Collection.CRITERIA, c.id, _dump(c))
        logger.info("Seeded %d criteria", len(items))
        return len(items)

    # -------- Models --------

    async def create_model(self, name: str, vendor: str = "", notes: str = "") -> ModelRecord:
        model = ModelRecord(id=new_id(), name=name, vendor=vendor, notes=notes)
        await self._store.put(Collection.MODELS, model.id, _dump(model))
        return model

    async def get_model(self, model_id: str) -> ModelRecord | None:
        doc = await self._store.get(Collection.MODELS, model_id)
        return ModelRecord.model_validate(doc) if doc is not None else None

    async def list_models(self) -> list[ModelRecord]:
        return [ModelRecord.model_validate(d) for d in await self._store.list(Collection.MODELS)]

    async def models_with_counts(self) -> list[dict[str, Any]]:
        """Models annotated with assessment count and latest assessment date, newest first."""

        assessments = await self.list_assessments()
        out: list[dict[str, Any]] = []
        for model in await self.list_models():
            mine = [a for a in assessments if a.model_id == model.id]
            last = max((a.created_at for a in mine), default=None)
            out.append(
                {
                    **_dump(model),
                    "assessment_count": len(mine),
                    "last_assessment_date": last.isoformat() if last else None,
                }
            )
        # models never assessed go last
        out.sort(key=lambda m: m["last_assessment_date"] or "", reverse=True)
        return out

    async def delete_model(self, model_id: str, *, user: str = "admin") -> tuple[ModelRecord, int] | None:
        """Delete a model with all of its assessments and their items.

        Returns:
            The deleted model and the number of assessments removed, or ``None`` if the model
            does not exist.
        """

        model = await self.get_model(model_id)
        if model is None:
            return None

        assessments = await self.list_assessments(model_id=model_id)
        for a in assessments:
            await self.delete_assessment(a.id)
        await self._store.delete(Collection.MODELS, model_id)

        await self.add_audit_log(
            user=user,
            action="DELETE_MODEL",
            entity_type="model",
            entity_id=model_id,
            changes={
                "model_name": model.name,
                "vendor": model.vendor,
                "deleted_assessments": len(assessments),
            },
        )
        logger.info("Deleted model %s with %d assessments", model.name, len(assessments))
        return model, len(assessments)

    # -------- Assessments --------

    async def save_assessment(self, assessment: AssessmentRecord) -> AssessmentRecord:
        assessment.updated_at = utcnow()
        await self._store.put(Collection.ASSESSMENTS, assessment.id, _dump(assessment))
        return assessment

    async def get_assessment(self, assessment_id: str) -> AssessmentRecord | None:
        doc = await self._store.get(Collection.ASSESSMENTS, assessment_id)
        return AssessmentRecord.model_validate(doc) if doc is not None else None

    async def list_assessments(self, *, model_id: str | None = None) -> list[AssessmentRecord]:
        """All assessments, newest first."""

        records = [AssessmentRecord.model_validate(d) for d in await self._store.list(Collection.ASSESSMENTS)]
        if model_id is not None:
            records = [a for a in records if a.model_id == model_id]
        return sorted(records, key=lambda a: a.created_at, reverse=True)

    async def latest_assessments_per_model(self, *, model_id: str | None = None) -> list[AssessmentRecord]:
        """Keep only the newest assessment for each model name."""

        latest: dict[str, AssessmentRecord] = {}
        for a in await self.list_assessments(model_id=model_id):
            current = latest.get(a.model_name)
            if current is None or a.created_at > current.created_at:
                latest[a.model_name] = a
        return sorted(latest.values(), key=lambda a: a.created_at, reverse=True)

    async def delete_assessment(self, assessment_id: str) -> bool:
        for item in await self.list_assessment_items(assessment_id):
            await self._store.delete(Collection.ASSESSMENT_ITEMS, item.id)
        return await self._store.delete(Collection.ASSESSMENTS, assessment_id)

    async def cleanup_old_assessments(self) -> tuple[list[str], int]:
        """Delete every assessment except the newest one per model name.

        Returns:
            Deleted assessment ids and the number of models that keep an assessment.
        """

        keep = {a.id for a in await self.latest_assessments_per_model()}
        deleted: list[str] = []
        for a in await self.list_assessments():
            if a.id in keep:
                continue
            await self.delete_assessment(a.id)
            deleted.append(a.id)
        logger.info("Cleaned up %d assessments", len(deleted))
        return deleted, len(keep)

    # -------- Assessment items --------

    async def add_assessment_item(
        self,
        assessment_id: str,
        criterion_id: str,
        judgement: Judgement,
        *,
        filled_by: str = "AI",
    ) -> AssessmentItem:
        item = AssessmentItem(
            id=new_id(),
            assessment_id=assessment_id,
            criterion_id=criterion_id,
            verdict=judgement.verdict,
            rationale=judgement.rationale,
            evidences=judgement.evidences,
            filled_by=filled_by,
        )
        await self._store.put(Collection.ASSESSMENT_ITEMS, item.id, _dump(item))
        return item

    async def list_assessment_items(self, assessment_id: str) -> list[AssessmentItem]:
        docs = await self._store.list(Collection.ASSESSMENT_ITEMS)
        items = [AssessmentItem.model_validate(d) for d in docs if d.get("assessment_id") == assessment_id]
        return sorted(items, key=lambda i: (i.updated_at, i.id))

    # -------- Audit --------

    async def add_audit_log(
        self,
        *,
        user: str,
        action: str,
        entity_type: str,
        entity_id: str,
        changes: Mapping[str, Any] | None = None,
    ) -> AuditLog:
        log = AuditLog(
            id=new_id(),
            user=user,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            changes=dict(changes or {}),
        )
        await self._store.put(Collection.AUDIT_LOGS, log.id, _dump(log))
        return log

    async def list_audit_logs(self, limit: int = 100) -> list[AuditLog]:
        logs = [AuditLog.model_validate(d) for d in await self._store.list(Collection.AUDIT_LOGS)]
        logs.sort(key=lambda log: log.timestamp, reverse=True)
        return logs[:limit]

    # -------- Views --------

    async def build_view(self, assessment_id: str) -> AssessmentView | None:
        """Join an assessment with its model, items and criteria for display."""

        assessment = await self.get_assessment(assessment_id)
        if assessment is None:
            return None

        criteria = {c.id: c for c in await self.list_criteria()}
        views: list[ResultItemView] = []
        for item in await self.list_assessment_items(assessment_id):
            criterion = criteria.get(item.criterion_id)
            if criterion is None:
                logger.warning("Assessment item references unknown criterion", extra={"criterion_id": item.criterion_id})
                continue
            views.append(ResultItemView(criterion=criterion, judgement=item.to_judgement()))
        views.sort(key=lambda v: (v.criterion.order, v.criterion.id))

        return AssessmentView(
            assessment=assessment,
            model=await self.get_model(assessment.model_id),
            items=views,
            category_summaries=assessment.category_summaries,
            overall_summary=assessment.summary,
            stats=assessment.stats,
        )

