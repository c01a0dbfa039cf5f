"""Persisted assessment records and investigation inputs/outputs."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from assessor.models.criterion import Criterion
from assessor.models.evidence import Evidence, Judgement, Verdict


def utcnow() -> datetime:
    return datetime.now(UTC)


class InvestigationRequest(BaseModel):
    """Submission payload: a model name and an optional vendor."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    model_name: str = Field(
        min_length=1,
        max_length=200,
        validation_alias=AliasChoices("model_name", "modelName"),
    )
    vendor: str = Field(default="", max_length=200)

    @field_validator("model_name")
    @classmethod
    def _model_name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("model_name must not be empty")
        return v

    @field_validator("vendor", mode="before")
    @classmethod
    def _vendor_default(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v


class AssessmentStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ComplianceStats(BaseModel):
    total: int = 0
    compliant: int = 0
    non_compliant: int = 0
    needs_improvement: int = 0
    unknown: int = 0


class ModelRecord(BaseModel):
    id: str
    name: str
    vendor: str = ""
    notes: str = ""


class AssessmentRecord(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str
    model_id: str
    model_name: str
    vendor: str = ""
    status: AssessmentStatus = AssessmentStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    created_by: str = "AI"
    summary: str = ""
    category_summaries: dict[str, str] = Field(default_factory=dict)
    stats: ComplianceStats | None = None
    error: str | None = None


class AssessmentItem(BaseModel):
    """One persisted judgement of one criterion within an assessment."""

    id: str
    assessment_id: str
    criterion_id: str
    verdict: Verdict
    rationale: str = ""
    evidences: list[Evidence] = Field(default_factory=list)
    filled_by: str = "AI"
    updated_at: datetime = Field(default_factory=utcnow)

    def to_judgement(self) -> Judgement:
        return Judgement(verdict=self.verdict, rationale=self.rationale, evidences=self.evidences)


class AuditLog(BaseModel):
    id: str
    timestamp: datetime = Field(default_factory=utcnow)
    user: str
    action: str
    entity_type: str
    entity_id: str
    changes: dict[str, Any] = Field(default_factory=dict)


class InvestigationResult(BaseModel):
    """Structured outcome of one investigation run."""

    judgements: dict[str, Judgement] = Field(default_factory=dict)
    category_summaries: dict[str, str] = Field(default_factory=dict)
    overall_summary: str = ""
    stats: ComplianceStats = Field(default_factory=ComplianceStats)


class ResultItemView(BaseModel):
    """An assessment item joined with its criterion for display."""

    criterion: Criterion
    judgement: Judgement


class AssessmentView(BaseModel):
    """Everything the result page needs for one assessment."""

    assessment: AssessmentRecord
    model: ModelRecord | None = None
    items: list[ResultItemView] = Field(default_factory=list)
    category_summaries: dict[str, str] = Field(default_factory=dict)
    overall_summary: str = ""
    stats: ComplianceStats | None = None
