"""CLI entrypoints for Assessor."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from assessor.api import serve
from assessor.config import Settings, load_settings
from assessor.logging import configure_logging, get_logger
from assessor.models.assessment import AssessmentView, InvestigationRequest
from assessor.models.criterion import Criterion
from assessor.orchestrator.runner import Orchestrator
from assessor.planning.groups import CATEGORY_TO_GROUP
from assessor.storage import create_store
from assessor.storage.repository import load_catalog

app = typer.Typer(add_completion=False, help="Automated security assessments of AI language models")
logger = get_logger(__name__)
console = Console()


async def _investigate(settings: Settings, request: InvestigationRequest) -> AssessmentView | None:
    store = create_store(settings)
    try:
        orchestrator = Orchestrator.from_settings(settings, store)
        run_id, _result = await orchestrator.investigate(request)
        return await orchestrator.repository.build_view(run_id)
    finally:
        await store.close()


@app.command()
def investigate(
    model_name: str = typer.Argument(..., help="Name of the model to assess, e.g. 'GPT-4o'"),
    vendor: str = typer.Option("", "--vendor", "-v", help="Model vendor, e.g. 'OpenAI'"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the result JSON here"),
) -> None:
    """Run a full investigation in-process and print the outcome."""

    if not model_name.strip():
        raise typer.BadParameter("MODEL_NAME must not be empty.")

    settings = load_settings()
    configure_logging(settings.log_level)
    logger.info("CLI investigation requested")

    view = asyncio.run(_investigate(settings, InvestigationRequest(model_name=model_name, vendor=vendor)))
    if view is None:
        raise typer.Exit(code=1)

    table = Table(title=f"{view.assessment.model_name} ({view.assessment.status.value})")
    table.add_column("ID")
    table.add_column("Category")
    table.add_column("Criterion")
    table.add_column("Verdict")
    for item in view.items:
        table.add_row(item.criterion.id, item.criterion.category, item.criterion.name, item.judgement.verdict.value)
    console.print(table)
    console.print(view.overall_summary)

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(
            json.dumps(view.model_dump(mode="json"), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        typer.echo(str(output))

    if view.assessment.error:
        raise typer.Exit(code=1)


@app.command()
def criteria(
    catalog: Path | None = typer.Option(None, "--catalog", help="Criteria JSON file (defaults to the bundled one)"),
) -> None:
    """List the criteria catalog and the search group each category maps to."""

    items: list[Criterion] = sorted(load_catalog(catalog), key=lambda c: (c.order, c.id))
    table = Table(title=f"{len(items)} criteria")
    table.add_column("#", justify="right")
    table.add_column("ID")
    table.add_column("Category")
    table.add_column("Group")
    table.add_column("Name")
    for c in items:
        table.add_row(str(c.order), c.id, c.category, CATEGORY_TO_GROUP.get(c.category, "-"), c.name)
    console.print(table)


app.command("serve", help="Start the API server.")(serve.main)


if __name__ == "__main__":
    app()
