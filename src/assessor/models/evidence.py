"""Evidence and judgement models.

Search results enter the pipeline as :class:`EvidenceDocument`; the judge cites them back as
:class:`Evidence` entries attached to a :class:`Judgement`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

SNIPPET_MAX_CHARS = 300


class Verdict(str, Enum):
    """Tri-state compliance verdict plus the insufficient-information marker."""

    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    NEEDS_IMPROVEMENT = "needs_improvement"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "Verdict":
        """Map a judge-provided verdict onto the enum.

        Accepts enum values, loose spellings and the legacy glyph encoding
        (``○`` / ``×`` / ``要改善`` / ``null``).

        Raises:
            ValueError: If the value cannot be interpreted.
        """

        if value is None:
            return cls.UNKNOWN
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"invalid verdict: {value!r}")
        key = value.strip().lower().replace("-", "_").replace(" ", "_")
        verdict = _VERDICT_ALIASES.get(key)
        if verdict is None:
            raise ValueError(f"invalid verdict: {value!r}")
        return verdict


_VERDICT_ALIASES: dict[str, Verdict] = {
    "compliant": Verdict.COMPLIANT,
    "meets": Verdict.COMPLIANT,
    "pass": Verdict.COMPLIANT,
    "○": Verdict.COMPLIANT,
    "non_compliant": Verdict.NON_COMPLIANT,
    "noncompliant": Verdict.NON_COMPLIANT,
    "not_compliant": Verdict.NON_COMPLIANT,
    "fail": Verdict.NON_COMPLIANT,
    "×": Verdict.NON_COMPLIANT,
    "needs_improvement": Verdict.NEEDS_IMPROVEMENT,
    "needsimprovement": Verdict.NEEDS_IMPROVEMENT,
    "partial": Verdict.NEEDS_IMPROVEMENT,
    "要改善": Verdict.NEEDS_IMPROVEMENT,
    "unknown": Verdict.UNKNOWN,
    "insufficient_information": Verdict.UNKNOWN,
    "null": Verdict.UNKNOWN,
    "none": Verdict.UNKNOWN,
}


class EvidenceDocument(BaseModel):
    """A ranked document returned by the search provider."""

    url: str
    title: str = ""
    content: str = ""
    score: float = 0.0

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.url, self.title)


class Evidence(BaseModel):
    """A cited snippet supporting a judgement."""

    url: str
    title: str = ""
    snippet: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("snippet", mode="before")
    @classmethod
    def _truncate_snippet(cls, v: Any) -> Any:
        if isinstance(v, str) and len(v) > SNIPPET_MAX_CHARS:
            return v[:SNIPPET_MAX_CHARS]
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> Any:
        if v is None:
            return 0.0
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return min(1.0, max(0.0, float(v)))
        return v


class Judgement(BaseModel):
    """Verdict, rationale and cited evidence for one criterion."""

    verdict: Verdict
    rationale: str = ""
    evidences: list[Evidence] = Field(default_factory=list)

    @field_validator("verdict", mode="before")
    @classmethod
    def _parse_verdict(cls, v: Any) -> Verdict:
        return Verdict.parse(v)

    @classmethod
    def unknown(cls, rationale: str) -> "Judgement":
        return cls(verdict=Verdict.UNKNOWN, rationale=rationale, evidences=[])
