# src/chunksync/cli.py
"""chunksync Command Line Interface.

Operator commands over the chunk store and shared state: inspect a
run's stats and failures, run the retention sweep, read or clear
shared-state entries.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from chunksync import __version__
from chunksync.contracts import ChunkStatus, SchemaCompatibilityError
from chunksync.core.chunks import ChunkStore
from chunksync.core.config import ChunkSyncSettings, load_settings
from chunksync.core.database import ChunkSyncDB
from chunksync.core.logging import configure_logging
from chunksync.core.retention import ChunkPurger
from chunksync.core.state import SharedStateStore
from chunksync.engine.stats import StatsAggregator

__all__ = ["app"]

app = typer.Typer(
    name="chunksync",
    help="chunksync: chunked job orchestration for asynchronous job runtimes.",
    no_args_is_help=True,
)
state_app = typer.Typer(help="Read or clear shared-state entries.", no_args_is_help=True)
app.add_typer(state_app, name="state")


@dataclass
class _Context:
    settings: ChunkSyncSettings
    database_url: str


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"chunksync version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file (defaults apply when omitted).",
    ),
    database: str | None = typer.Option(
        None,
        "--database",
        "-d",
        help="SQLAlchemy database URL (overrides settings).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """chunksync: chunked job orchestration."""
    config = _load_config(settings)
    level = "DEBUG" if verbose else config.logging.level
    configure_logging(json_output=json_logs or config.logging.json_output, level=level)
    ctx.obj = _Context(settings=config, database_url=database or config.database.url)


def _load_config(path: Path | None) -> ChunkSyncSettings:
    if path is None:
        return ChunkSyncSettings()
    try:
        return load_settings(path)
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {path}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _open_db(ctx: typer.Context) -> ChunkSyncDB:
    context: _Context = ctx.obj
    url = context.database_url
    if url.startswith("sqlite:///") and ":memory:" not in url:
        Path(url.removeprefix("sqlite:///")).expanduser().parent.mkdir(parents=True, exist_ok=True)
    try:
        return ChunkSyncDB(url, echo=context.settings.database.echo)
    except SchemaCompatibilityError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    except SQLAlchemyError as e:
        typer.echo(f"Error connecting to database: {e}", err=True)
        raise typer.Exit(1) from None


def _echo_json(value: Any) -> None:
    typer.echo(json.dumps(value, indent=2, sort_keys=True))


@app.command()
def stats(
    ctx: typer.Context,
    group: str = typer.Argument(..., help="Group (run) to summarize."),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show status counts and timings of a run."""
    with _open_db(ctx) as db:
        summary = StatsAggregator(ChunkStore(db)).summary(group)

    if summary.total == 0:
        typer.echo(f"Error: No chunks found for group '{group}'", err=True)
        raise typer.Exit(1)

    if json_output:
        _echo_json(summary.to_dict())
        return

    typer.echo(f"Group: {summary.group}")
    typer.echo(f"Chunks: {summary.total}")
    for status, count in summary.counts.items():
        typer.echo(f"  {status.value}: {count}")
    typer.echo(f"Duration: {_fmt_seconds(summary.duration)}")
    typer.echo(f"Average chunk: {_fmt_seconds(summary.average_duration)}")
    if summary.slowest is not None and summary.fastest is not None:
        typer.echo(f"Slowest chunk: #{summary.slowest.chunk_id} ({_fmt_seconds(summary.slowest.duration)})")
        typer.echo(f"Fastest chunk: #{summary.fastest.chunk_id} ({_fmt_seconds(summary.fastest.duration)})")


def _fmt_seconds(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.4f}s"


@app.command()
def failed(
    ctx: typer.Context,
    group: str = typer.Argument(..., help="Group (run) to inspect."),
) -> None:
    """List the failed chunks of a run."""
    with _open_db(ctx) as db:
        chunks = StatsAggregator(ChunkStore(db)).failed_chunks(group)

    if not chunks:
        typer.echo(f"No failed chunks in group '{group}'.")
        return
    for chunk in chunks:
        typer.echo(f"#{chunk.id}  job={chunk.job_id}  records={len(chunk.payload)}")


@app.command()
def purge(
    ctx: typer.Context,
    days: int | None = typer.Option(
        None,
        "--days",
        "-r",
        help="Delete chunks at least this many days old (default: from settings).",
    ),
    status: list[ChunkStatus] | None = typer.Option(
        None,
        "--status",
        help="Only delete chunks in this status (repeatable).",
    ),
) -> None:
    """Delete old chunks and expired shared-state entries."""
    retention = ctx.obj.settings.retention
    retention_days = days if days is not None else retention.retention_days
    statuses = status or retention.statuses
    if retention_days < 0:
        typer.echo("Error: --days must be non-negative", err=True)
        raise typer.Exit(1)

    with _open_db(ctx) as db:
        purger = ChunkPurger(ChunkStore(db), SharedStateStore(db, settings=ctx.obj.settings.shared_state))
        result = purger.purge(retention_days=retention_days, statuses=statuses)

    typer.echo(
        f"Deleted {result.deleted_count} chunk(s) older than {retention_days} days "
        f"and {result.expired_state_count} expired state entr{'y' if result.expired_state_count == 1 else 'ies'}."
    )


@state_app.command("get")
def state_get(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Shared-state key."),
) -> None:
    """Print the value stored under KEY as JSON."""
    with _open_db(ctx) as db:
        missing = object()
        value = SharedStateStore(db, settings=ctx.obj.settings.shared_state).get(key, missing)

    if value is missing:
        typer.echo(f"Error: No state stored under '{key}'", err=True)
        raise typer.Exit(1)
    _echo_json(value)


@state_app.command("delete")
def state_delete(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Shared-state key."),
) -> None:
    """Delete the value stored under KEY."""
    with _open_db(ctx) as db:
        SharedStateStore(db, settings=ctx.obj.settings.shared_state).delete(key)
    typer.echo(f"Deleted '{key}'.")


if __name__ == "__main__":
    app()
