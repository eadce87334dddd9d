"""CLI subpackage for the up/down paper trader.

Create the Typer application and register all command modules.
"""

import typer

from updown_trader.apps.cli.replay_cmd import replay
from updown_trader.apps.cli.state_cmd import reset_breaker, status

app = typer.Typer(help="Up/down binary market paper trader")

app.command()(replay)
app.command()(status)
app.command(name="reset-breaker")(reset_breaker)

__all__ = ["app"]
