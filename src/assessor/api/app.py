"""FastAPI app: investigation submission, progress polling/SSE and result retrieval."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from assessor import __version__
from assessor.config import Settings, load_settings
from assessor.errors import InvestigationError, RunAlreadyFinishedError, RunNotFoundError
from assessor.logging import configure_logging, get_logger
from assessor.models.assessment import AssessmentView, AuditLog, InvestigationRequest
from assessor.models.criterion import Criterion
from assessor.models.progress import ProgressRecord
from assessor.orchestrator.runner import Orchestrator
from assessor.storage import create_store


def create_app(
    settings: Settings | None = None,
    *,
    orchestrator: Orchestrator | None = None,
) -> FastAPI:
    """Create FastAPI app.

    Args:
        settings: Settings; loaded from the environment when omitted.
        orchestrator: Pre-wired orchestrator (tests); built from settings when omitted.
    """

    settings = settings or load_settings()
    configure_logging(settings.log_level)
    logger = get_logger(__name__)

    if orchestrator is None:
        orchestrator = Orchestrator.from_settings(settings, create_store(settings))
    repo = orchestrator.repository
    tracker = orchestrator.tracker

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        seeded = await repo.seed_criteria()
        logger.info("API started", extra={"seeded_criteria": seeded, "env": settings.app_env})
        yield
        await repo.store.close()

    app = FastAPI(title="Assessor", version=__version__, lifespan=lifespan)

    @app.exception_handler(RequestValidationError)
    async def validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]
        return JSONResponse(status_code=400, content={"error": "Invalid request data", "details": details})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/criteria")
    async def criteria() -> list[Criterion]:
        await repo.seed_criteria()
        return await repo.list_criteria()

    @app.post("/investigations", status_code=202)
    async def start_investigation(req: InvestigationRequest, background: BackgroundTasks) -> dict[str, str]:
        logger.info("API investigation requested", extra={"model_name": req.model_name, "vendor": req.vendor})
        try:
            run_id = await orchestrator.submit(req)
        except InvestigationError as e:
            logger.exception("Investigation submission failed")
            raise HTTPException(status_code=500, detail="Failed to start investigation") from e
        # Runs after the response has been sent
        background.add_task(orchestrator.run, run_id)
        return {"run_id": run_id, "status": "started"}

    @app.get("/investigations/{run_id}")
    async def investigation_result(run_id: str) -> AssessmentView:
        view = await repo.build_view(run_id)
        if view is None:
            raise HTTPException(status_code=404, detail="run not found")
        return view

    @app.get("/investigations/{run_id}/progress")
    async def investigation_progress(run_id: str) -> ProgressRecord:
        record = await tracker.get(run_id)
        if record is None:
            raise HTTPException(status_code=404, detail="run not found")
        return record

    @app.get("/investigations/{run_id}/progress/stream")
    async def investigation_progress_stream(run_id: str) -> StreamingResponse:
        if await tracker.get(run_id) is None:
            raise HTTPException(status_code=404, detail="run not found")

        async def gen() -> AsyncIterator[bytes]:
            async for record in tracker.watch(run_id, interval_s=settings.progress_poll_interval_s):
                payload = json.dumps(record.model_dump(mode="json"), ensure_ascii=False)
                yield f"data: {payload}\n\n".encode("utf-8")

        return StreamingResponse(
            gen(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.post("/investigations/{run_id}/cancel", status_code=202)
    async def cancel_investigation(run_id: str) -> dict[str, str]:
        try:
            await orchestrator.cancel(run_id)
        except RunNotFoundError as e:
            raise HTTPException(status_code=404, detail="run not found") from e
        except RunAlreadyFinishedError as e:
            raise HTTPException(status_code=409, detail="run already finished") from e
        return {"run_id": run_id, "status": "cancelling"}

    @app.get("/assessments")
    async def assessments(model_id: str | None = None) -> list[AssessmentView]:
        views: list[AssessmentView] = []
        for a in await repo.latest_assessments_per_model(model_id=model_id):
            view = await repo.build_view(a.id)
            if view is not None:
                views.append(view)
        return views

    @app.delete("/assessments/cleanup")
    async def cleanup_assessments() -> dict[str, Any]:
        deleted, remaining = await repo.cleanup_old_assessments()
        return {
            "message": f"Deleted {len(deleted)} old assessments",
            "deleted_assessments": deleted,
            "remaining_models": remaining,
        }

    @app.get("/models")
    async def models() -> list[dict[str, Any]]:
        return await repo.models_with_counts()

    @app.delete("/models/{model_id}")
    async def delete_model(model_id: str) -> dict[str, Any]:
        deleted = await repo.delete_model(model_id)
        if deleted is None:
            raise HTTPException(status_code=404, detail="model not found")
        model, count = deleted
        return {
            "message": f"Deleted model {model.name} and {count} assessments",
            "deleted_model": model.model_dump(mode="json"),
            "deleted_assessments": count,
        }

    @app.get("/audit-logs")
    async def audit_logs(limit: int = 100) -> list[AuditLog]:
        return await repo.list_audit_logs(limit=max(1, min(limit, 1000)))

    return app
