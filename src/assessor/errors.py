"""Domain exceptions."""

from __future__ import annotations


class InvestigationError(RuntimeError):
    """Base error for investigation orchestration."""


class RunNotFoundError(InvestigationError, LookupError):
    """No investigation run exists for the given id."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"run not found: {run_id}")
        self.run_id = run_id


class RunAlreadyFinishedError(InvestigationError):
    """The run already reached a terminal state."""
