"""CLI command to resume an interrupted or failed run."""

from __future__ import annotations

import typer
from rich.console import Console

from caselens.config.settings import settings
from caselens.db.session import get_session
from caselens.errors import CaselensError
from caselens.repos.runs_repo import RunsRepository
from caselens.services.classifier import get_classifier
from caselens.services.run_controller import RunController, settings_for_run
from caselens.cli.status import metrics_tables

console = Console()


def resume_cmd(
    run_id: str = typer.Argument(..., help="Run ID"),
    retry_errors_only: bool = typer.Option(
        False, "--retry-errors-only", help="Reprocess only items whose result is flagged as errored."
    ),
) -> None:
    """Resume a run, processing only what the result log says is left."""
    try:
        with get_session() as session:
            run = RunsRepository(session).require(run_id)
            # the run talks to the endpoint it was started with, as it was configured then
            run_settings = settings_for_run(run, settings)
            classifier = get_classifier(run_settings, provider=run.model_provider, api_url=run.api_url)
            controller = RunController(session, classifier, run_settings)
            result = controller.resume_run(run_id, retry_errors_only=retry_errors_only)
    except CaselensError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(1)

    if result.items_attempted == 0:
        console.print(f"[green]✓[/green] Nothing left to process; run {run_id} finalized")
    else:
        console.print(
            f"[green]✓[/green] Run {run_id} {result.status}: "
            f"{result.items_attempted} processed, {result.items_errored} errored"
        )
    if result.metrics is not None:
        for t in metrics_tables(result.metrics):
            console.print(t)


if __name__ == "__main__":
    typer.run(resume_cmd)
