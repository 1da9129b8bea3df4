from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from caselens.config.settings import settings
from caselens.db.engine import build_engine, ping_db
from caselens.db.init_db import ensure_db, init_db
from caselens.db.session import get_session
from caselens.errors import CaselensError
from caselens.logging_setup import configure_logging
from caselens.repos.result_repo import DISAGREEMENT_KINDS
from caselens.services.corpus_loader import load_corpus
from caselens.services.queries import find_disagreements, list_runs
from caselens.cli.resume import resume_cmd
from caselens.cli.start import start_cmd
from caselens.cli.status import status_cmd

app = typer.Typer(help="caselens CLI (init DB, load corpus, start/resume runs, inspect results).")
console = Console()


@app.callback()
def main_callback(
    log_level: str = typer.Option(settings.log_level, "--log-level", help="Console log level."),
) -> None:
    configure_logging(log_level)


@app.command("init-db")
def init_db_cmd(
    reset: bool = typer.Option(False, "--reset", help="Drop all tables first (destroys data)."),
) -> None:
    engine = build_engine()
    if reset:
        init_db(engine)
    else:
        ensure_db(engine)
    ping = ping_db(engine)
    if not ping.ok:
        console.print(f"[red]✗[/red] Database not reachable: {ping.detail}")
        raise typer.Exit(1)
    typer.echo("✅ Database initialized and reachable.")


@app.command("load-corpus")
def load_corpus_cmd(
    source: Path = typer.Option(..., "--source", help="Corpus CSV (long or wide layout)."),
    force: bool = typer.Option(False, "--force", help="Replace records already loaded from this source."),
) -> None:
    """Import a corpus CSV into the corpus store."""
    try:
        with get_session() as session:
            n = load_corpus(session, source, force_reload=force)
    except CaselensError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(1)
    typer.echo(f"✅ Corpus holds {n} records from {source}.")


@app.command("list-runs")
def list_runs_cmd(
    status: Optional[str] = typer.Option(None, "--status", help="running / completed / failed"),
    limit: int = typer.Option(50, "--limit", help="Max rows."),
) -> None:
    """List runs, newest first."""
    with get_session() as session:
        runs = list_runs(session, status=status, limit=limit)

        table = Table(title="Runs")
        table.add_column("run_id", style="cyan")
        table.add_column("name", style="magenta")
        table.add_column("status", style="green")
        table.add_column("model", style="green")
        table.add_column("progress", justify="right")
        table.add_column("f1", justify="right")
        table.add_column("created_at")

        for r in runs:
            table.add_row(
                r.run_id,
                r.name,
                r.status,
                r.model_name,
                f"{r.items_processed}/{r.total_items if r.total_items is not None else '?'}",
                f"{r.f1:.3f}" if r.f1 is not None else "-",
                r.created_at.isoformat() if r.created_at else "",
            )

    console.print(table)


@app.command("disagreements")
def disagreements_cmd(
    run_id: str = typer.Argument(..., help="Run ID"),
    kind: str = typer.Option("both", "--kind", help="false_positive / false_negative / both"),
    limit: int = typer.Option(20, "--limit", help="Max rows."),
) -> None:
    """Show the run's false positives / false negatives, most confident first."""
    if kind not in DISAGREEMENT_KINDS:
        console.print(f"[red]✗[/red] Error: --kind must be one of {', '.join(DISAGREEMENT_KINDS)}")
        raise typer.Exit(1)

    try:
        with get_session() as session:
            rows = find_disagreements(session, run_id, kind=kind)[:limit]

            table = Table(title=f"Disagreements for run_id={run_id} ({kind})")
            table.add_column("entity_id", style="cyan")
            table.add_column("subtype", style="cyan")
            table.add_column("type", style="magenta")
            table.add_column("confidence", style="green", justify="right")
            table.add_column("indicators")
            table.add_column("rationale")
            for r in rows:
                table.add_row(
                    r.entity_id,
                    r.subtype,
                    "FP" if r.is_false_positive else "FN",
                    f"{r.confidence:.2f}" if r.confidence is not None else "-",
                    "; ".join(json.loads(r.indicators_json or "[]")),
                    (r.rationale or "")[:120],
                )
    except CaselensError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(1)

    console.print(table)


app.command("start")(start_cmd)
app.command("resume")(resume_cmd)
app.command("status")(status_cmd)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
