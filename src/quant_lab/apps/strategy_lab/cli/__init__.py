"""CLI subpackage for the strategy lab.

Create the Typer application and register the command modules.
"""

import typer

from quant_lab.apps.strategy_lab.cli.evaluate_cmd import evaluate
from quant_lab.apps.strategy_lab.cli.list_cmd import list_strategies

app = typer.Typer(help="Evaluate and rank intraday options strategies")

app.command()(evaluate)
app.command("list")(list_strategies)

__all__ = ["app"]
