"""Logging utilities.

Every record carries the investigation it belongs to: the run id, the pipeline step and, while
a criterion is being persisted, the criterion id. The values live in context variables so
concurrent runs in one event loop never see each other's context.
"""

from __future__ import annotations

import contextlib
import contextvars
import logging
from typing import Any

from rich.logging import RichHandler

_UNSET = "-"

_run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("assessor_run_id", default=_UNSET)
_step_var: contextvars.ContextVar[str] = contextvars.ContextVar("assessor_step", default=_UNSET)
_criterion_var: contextvars.ContextVar[str] = contextvars.ContextVar("assessor_criterion", default=_UNSET)


def current_context() -> dict[str, str]:
    """Snapshot of the investigation context bound to the current task."""

    return {
        "run_id": _run_id_var.get(),
        "step": _step_var.get(),
        "criterion": _criterion_var.get(),
    }


class _ContextFilter(logging.Filter):
    """Inject investigation context into log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        for key, value in current_context().items():
            setattr(record, key, value)
        return True


@contextlib.contextmanager
def run_context(*, run_id: str, step: str | None = None) -> Any:
    """Bind a run (and optionally its first step) for the duration of the block.

    Args:
        run_id: Run identifier.
        step: Optional step identifier.
    """

    token_run = _run_id_var.set(run_id)
    token_step = _step_var.set(step or _step_var.get())
    token_criterion = _criterion_var.set(_UNSET)
    try:
        yield
    finally:
        _run_id_var.reset(token_run)
        _step_var.reset(token_step)
        _criterion_var.reset(token_criterion)


@contextlib.contextmanager
def criterion_context(criterion_id: str) -> Any:
    """Bind the criterion being persisted."""

    token = _criterion_var.set(criterion_id)
    try:
        yield
    finally:
        _criterion_var.reset(token)


def set_step(step: str) -> None:
    """Move the current run to another pipeline step."""

    _step_var.set(step)


def configure_logging(level: str = "INFO") -> None:
    """Route all records through one rich console handler.

    Args:
        level: Logging level name.
    """

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s run=%(run_id)s step=%(step)s criterion=%(criterion)s "
        "%(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.setLevel(level)
    # The API factory and the CLI may both configure logging in one process
    handler = next((h for h in root.handlers if isinstance(h, RichHandler)), None)
    if handler is None:
        handler = RichHandler(rich_tracebacks=True, show_time=True, show_level=True)
        root.addHandler(handler)
    if not any(isinstance(f, _ContextFilter) for f in handler.filters):
        handler.addFilter(_ContextFilter())
    handler.setFormatter(formatter)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""

    return logging.getLogger(name)
