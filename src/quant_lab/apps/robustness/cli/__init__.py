"""CLI subpackage for the robustness engine.

Create the Typer application and register the command modules.
"""

import typer

from quant_lab.apps.robustness.cli.run_cmd import run
from quant_lab.apps.robustness.cli.show_cmd import show

app = typer.Typer(help="Grade the robustness of an intraday options strategy")

app.command()(run)
app.command()(show)

__all__ = ["app"]
