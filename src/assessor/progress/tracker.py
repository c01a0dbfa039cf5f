"""Progress state machine for investigation runs.

The pipeline is the only writer for its run. The tracker keeps the authoritative record in
memory and replaces the stored copy wholesale after every transition, so readers never see a
half-applied update and concurrent runs never read-modify-write each other's records.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from datetime import UTC, datetime

from assessor.logging import get_logger
from assessor.models.criterion import CurrentItem
from assessor.models.progress import OverallStatus, ProgressRecord, Step, StepStatus
from assessor.storage.base import Collection, KeyValueStore

logger = get_logger(__name__)

_ALLOWED: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.RUNNING, StepStatus.ERROR}),
    StepStatus.RUNNING: frozenset({StepStatus.COMPLETED, StepStatus.ERROR}),
    StepStatus.COMPLETED: frozenset(),
    StepStatus.ERROR: frozenset(),
}


class ProgressTracker:
    """Creates, mutates and reads :class:`ProgressRecord` snapshots."""

    def __init__(self, store: KeyValueStore, *, ttl_seconds: int = 60 * 60 * 24) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._records: dict[str, ProgressRecord] = {}

    async def create(
        self,
        run_id: str,
        model_name: str,
        steps: Sequence[tuple[str, str]],
        *,
        total_items: int = 0,
    ) -> ProgressRecord:
        """Initialise a run with every step pending and status ``preparing``.

        Args:
            run_id: Run identifier.
            model_name: Model under assessment.
            steps: ``(step_id, display_name)`` pairs in execution order.
            total_items: Number of criteria the run will judge.
        """

        record = ProgressRecord(
            run_id=run_id,
            model_name=model_name,
            total_items=total_items,
            steps=[Step(id=sid, name=name) for sid, name in steps],
        )
        self._records[run_id] = record
        await self._write(record)
        return record.model_copy(deep=True)

    async def advance_step(
        self,
        run_id: str,
        step_id: str,
        status: StepStatus,
        details: str | None = None,
    ) -> bool:
        """Transition one step.

        Illegal transitions, unknown steps and writes to terminal runs are logged no-ops.

        Returns:
            Whether the transition was applied.
        """

        record = self._writable(run_id)
        if record is None:
            return False
        step = record.step(step_id)
        if step is None:
            logger.warning("Unknown progress step", extra={"run": run_id, "step_id": step_id})
            return False
        if status not in _ALLOWED[step.status]:
            logger.warning(
                "Ignoring illegal step transition",
                extra={"run": run_id, "step_id": step_id, "from": step.status.value, "to": status.value},
            )
            return False

        step.status = status
        step.details = details
        step.timestamp = datetime.now(UTC)
        if status is StepStatus.RUNNING and record.overall_status is OverallStatus.PREPARING:
            record.overall_status = OverallStatus.RUNNING
        await self._write(record)
        return True

    async def set_current_item(self, run_id: str, item: CurrentItem | None) -> None:
        record = self._writable(run_id)
        if record is None:
            return
        record.current_item = item
        await self._write(record)

    async def clear_current_item(self, run_id: str) -> None:
        await self.set_current_item(run_id, None)

    async def increment_completed(self, run_id: str, count: int = 1) -> None:
        record = self._writable(run_id)
        if record is None:
            return
        record.completed_items = min(record.total_items, record.completed_items + count)
        await self._write(record)

    async def finalize(
        self,
        run_id: str,
        status: OverallStatus,
        result_summary: str | None = None,
    ) -> bool:
        """Move the run to a terminal state.

        ``completed`` is only accepted once every step has completed. ``error`` marks any
        running step as errored. Pending steps stay pending.

        Returns:
            Whether the record was finalized.
        """

        if not status.is_terminal:
            raise ValueError(f"not a terminal status: {status.value}")

        record = self._writable(run_id)
        if record is None:
            return False

        if status is OverallStatus.COMPLETED:
            unfinished = [s.id for s in record.steps if s.status is not StepStatus.COMPLETED]
            if unfinished:
                logger.warning(
                    "Ignoring completion with unfinished steps",
                    extra={"run": run_id, "unfinished": unfinished},
                )
                return False
        else:
            now = datetime.now(UTC)
            for s in record.steps:
                if s.status is StepStatus.RUNNING:
                    s.status = StepStatus.ERROR
                    s.timestamp = now

        record.overall_status = status
        record.current_item = None
        record.result_summary = result_summary
        await self._write(record)
        # Terminal: drop the writer copy; readers use the store until the TTL expires
        self._records.pop(run_id, None)
        return True

    async def get(self, run_id: str) -> ProgressRecord | None:
        """Read the current snapshot from the store."""

        doc = await self._store.get(Collection.PROGRESS, run_id)
        if doc is None:
            return None
        return ProgressRecord.model_validate(doc)

    async def watch(self, run_id: str, *, interval_s: float = 1.0) -> AsyncIterator[ProgressRecord]:
        """Yield a snapshot every ``interval_s`` until the run is terminal.

        One store read per cycle. The terminal snapshot is yielded before the generator
        ends; a missing record ends it immediately. Closing the generator stops the reads
        without affecting the run.
        """

        while True:
            record = await self.get(run_id)
            if record is None:
                return
            yield record
            if record.is_terminal:
                return
            await asyncio.sleep(interval_s)

    def _writable(self, run_id: str) -> ProgressRecord | None:
        record = self._records.get(run_id)
        if record is None:
            logger.warning("Ignoring progress write for inactive run", extra={"run": run_id})
        return record

    async def _write(self, record: ProgressRecord) -> None:
        record.updated_at = datetime.now(UTC)
        await self._store.put(
            Collection.PROGRESS,
            record.run_id,
            record.model_dump(mode="json"),
            ttl_seconds=self._ttl,
        )
