"""CLI command to start a run from an experiment config."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from caselens.config.experiment import load_experiment_config
from caselens.config.settings import settings
from caselens.db.session import get_session
from caselens.errors import CaselensError
from caselens.services.classifier import get_classifier
from caselens.services.corpus_loader import load_corpus
from caselens.services.run_controller import RunController
from caselens.cli.status import metrics_tables

console = Console()


def start_cmd(
    config: Path = typer.Argument(..., help="Experiment YAML config"),
) -> None:
    """
    Validate the config, load the corpus if needed, then create and execute a run.
    """
    try:
        cfg = load_experiment_config(config)
        classifier = get_classifier(settings, provider=cfg.model.provider, api_url=cfg.model.api_url)

        with get_session() as session:
            n = load_corpus(session, cfg.data.file)
            console.print(f"[bold blue]Corpus ready: {n} records from {cfg.data.file}[/bold blue]")

            controller = RunController(session, classifier, settings)
            run_id = controller.start_run(cfg)
            console.print(f"[green]✓[/green] Created run_id={run_id}")

            result = controller.execute(run_id)
    except CaselensError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] Run {result.run_id} {result.status}: "
        f"{result.items_attempted} processed, {result.items_errored} errored"
    )
    if result.metrics is not None:
        for t in metrics_tables(result.metrics):
            console.print(t)
    if result.csv_file:
        console.print(f"[green]✓[/green] Wrote {result.csv_file}")
        console.print(f"[green]✓[/green] Wrote {result.json_file}")


if __name__ == "__main__":
    typer.run(start_cmd)
