"""CLI command for run status."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from caselens.db.session import get_session
from caselens.errors import CaselensError
from caselens.models.domain import MetricsBlock
from caselens.services.queries import describe_run

console = Console()


def _fmt(value: object) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.4f}"
    return str(value)


def metrics_tables(metrics: MetricsBlock) -> tuple[Table, Table]:
    table = Table(title="Metrics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    for key in ["accuracy", "precision", "recall", "f1", "pct_overlap_with_manual"]:
        table.add_row(key, _fmt(getattr(metrics, key)))

    cm = Table(title="Confusion Matrix")
    cm.add_column("TP", style="magenta", justify="right")
    cm.add_column("FP", style="magenta", justify="right")
    cm.add_column("TN", style="magenta", justify="right")
    cm.add_column("FN", style="magenta", justify="right")
    cm.add_row(
        str(metrics.n_true_positive),
        str(metrics.n_false_positive),
        str(metrics.n_true_negative),
        str(metrics.n_false_negative),
    )
    return table, cm


def status_cmd(run_id: str = typer.Argument(..., help="Run ID")) -> None:
    """Show registry row, progress, error breakdown and metrics for a run."""
    try:
        with get_session() as session:
            view = describe_run(session, run_id)
    except CaselensError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(1)

    table = Table(title=f"Run {view.run_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    total = view.total_items
    pct = f" ({100.0 * view.items_processed / total:.1f}%)" if total else ""
    table.add_row("name", view.name)
    table.add_row("status", view.status)
    table.add_row("model", view.model_name)
    table.add_row("prompt_version", _fmt(view.prompt_version))
    table.add_row("data_source", view.data_source)
    table.add_row("progress", f"{view.items_processed}/{_fmt(total)}{pct}")
    table.add_row("started_at", _fmt(view.started_at))
    table.add_row("ended_at", _fmt(view.ended_at))
    if view.status == "running":
        table.add_row("eta", _fmt(view.estimated_completion_at))
    table.add_row("errors", f"{view.errors.errored} " + (
        "(" + ", ".join(f"{k}={v}" for k, v in sorted(view.errors.by_kind.items())) + ")"
        if view.errors.by_kind else ""
    ))
    if view.notes:
        table.add_row("notes", view.notes)
    console.print(table)

    if view.metrics is not None:
        for t in metrics_tables(view.metrics):
            console.print(t)


if __name__ == "__main__":
    typer.run(status_cmd)
