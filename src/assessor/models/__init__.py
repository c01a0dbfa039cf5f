"""Pydantic models used across the project."""

from __future__ import annotations

from assessor.models.assessment import (
    AssessmentItem,
    AssessmentRecord,
    AssessmentStatus,
    AssessmentView,
    AuditLog,
    ComplianceStats,
    InvestigationRequest,
    InvestigationResult,
    ModelRecord,
    ResultItemView,
)
from assessor.models.criterion import Criterion, CurrentItem, SearchGroup
from assessor.models.evidence import Evidence, EvidenceDocument, Judgement, Verdict
from assessor.models.progress import OverallStatus, ProgressRecord, Step, StepStatus

__all__ = [
    "AssessmentItem",
    "AssessmentRecord",
    "AssessmentStatus",
    "AssessmentView",
    "AuditLog",
    "ComplianceStats",
    "Criterion",
    "CurrentItem",
    "Evidence",
    "EvidenceDocument",
    "InvestigationRequest",
    "InvestigationResult",
    "Judgement",
    "ModelRecord",
    "OverallStatus",
    "ProgressRecord",
    "ResultItemView",
    "SearchGroup",
    "Step",
    "StepStatus",
    "Verdict",
]
