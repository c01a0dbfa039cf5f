"""Progress state machine snapshot models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from assessor.models.criterion import CurrentItem


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class OverallStatus(str, Enum):
    PREPARING = "preparing"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (OverallStatus.COMPLETED, OverallStatus.ERROR)

    @property
    def rank(self) -> int:
        # Completed and Error share the terminal rank
        return {"preparing": 0, "running": 1, "completed": 2, "error": 2}[self.value]


class Step(BaseModel):
    id: str
    name: str
    status: StepStatus = StepStatus.PENDING
    details: str | None = None
    timestamp: datetime | None = None


class ProgressRecord(BaseModel):
    """Observable snapshot of one investigation run."""

    model_config = ConfigDict(protected_namespaces=())

    run_id: str
    model_name: str
    total_items: int = Field(default=0, ge=0)
    completed_items: int = Field(default=0, ge=0)
    current_item: CurrentItem | None = None
    steps: list[Step] = Field(default_factory=list)
    overall_status: OverallStatus = OverallStatus.PREPARING
    result_summary: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def step(self, step_id: str) -> Step | None:
        for s in self.steps:
            if s.id == step_id:
                return s
        return None

    @property
    def is_terminal(self) -> bool:
        return self.overall_status.is_terminal
