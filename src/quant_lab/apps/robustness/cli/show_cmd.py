"""CLI command showing a persisted robustness run."""

import asyncio
from typing import Annotated

import typer

from quant_lab.apps.robustness.cli._helpers import close_store, open_store, resolve_db_url
from quant_lab.apps.robustness.cli._output import print_record
from quant_lab.apps.robustness.runs import RunRecord
from quant_lab.core.exceptions import RunNotFoundError


def show(
    run_id: Annotated[str, typer.Argument(help="Run identifier")],
    db_url: Annotated[str | None, typer.Option(help="SQLAlchemy async database URL")] = None,
) -> None:
    """Show the status, grade, or error of a persisted run."""
    try:
        record = asyncio.run(load_run(run_id, resolve_db_url(db_url)))
    except RunNotFoundError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    print_record(record)


async def load_run(run_id: str, db_url: str) -> RunRecord:
    """Fetch a run record from the SQL store.

    Raises:
        RunNotFoundError: If no run has this identifier.

    """
    store = await open_store(db_url)
    try:
        record = await store.get_run(run_id)
    finally:
        await close_store(store)
    if record is None:
        msg = f"No robustness run with id {run_id}"
        raise RunNotFoundError(msg)
    return record
