"""CLI subpackage for manifolio.

Create the Typer application and register all command modules.
"""

import typer

from manifolio.cli.distribution_cmd import distribution
from manifolio.cli.recommend_cmd import recommend
from manifolio.cli.simulate_cmd import simulate

app = typer.Typer(help="Kelly bet sizing for CPMM prediction markets")

app.command()(recommend)
app.command()(simulate)
app.command()(distribution)

__all__ = ["app"]
