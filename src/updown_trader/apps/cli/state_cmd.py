"""CLI commands for inspecting and maintaining the persisted ledger.

``status`` prints the balance, open positions and risk counters stored in the
state file. ``reset-breaker`` clears the consecutive-loss circuit breaker,
which otherwise blocks every entry until an operator intervenes.
"""

from pathlib import Path
from typing import Annotated

import typer

from updown_trader.apps.cli._helpers import (
    build_engine_config,
    build_state_store,
    load_ledger,
    load_settings,
)
from updown_trader.core.timestamps import format_timestamp

_StateOption = Annotated[
    Path | None, typer.Option(help="State file (default: state.path from settings)")
]
_ConfigDirOption = Annotated[Path | None, typer.Option(help="Directory holding settings.yaml")]


def status(state: _StateOption = None, config_dir: _ConfigDirOption = None) -> None:
    """Show the persisted paper trading ledger."""
    loader = load_settings(config_dir)
    config = build_engine_config(loader)
    store = build_state_store(loader, state, config.initial_balance)
    ledger = load_ledger(store)

    typer.echo(f"State file: {store.path}")
    typer.echo(f"Balance: ${ledger.balance:.2f}")
    typer.echo(
        f"Daily net loss: ${ledger.daily_realized_net_loss:.2f} "
        f"(limit ${config.daily_loss_limit:.2f})"
    )
    tripped = ledger.consecutive_losses >= config.max_consecutive_losses
    breaker = " (circuit breaker tripped)" if tripped else ""
    typer.echo(
        f"Consecutive losses: {ledger.consecutive_losses}/{config.max_consecutive_losses}{breaker}"
    )
    win_rate = ledger.recent_win_rate
    if win_rate is not None:
        outcomes = " ".join(o.value for o in ledger.recent_outcomes)
        typer.echo(f"Recent win rate: {win_rate:.0%} ({outcomes})")
    typer.echo(f"Last entry: {format_timestamp(ledger.last_entry_timestamp)}")
    typer.echo(f"Last exit: {format_timestamp(ledger.last_exit_timestamp)}")
    typer.echo(f"Last stop-loss: {format_timestamp(ledger.last_stop_loss_timestamp)}")

    if not ledger.positions:
        typer.echo("\nNo open positions.")
        return

    typer.echo(f"\nOpen positions ({len(ledger.positions)}/{config.max_concurrent_positions}):")
    for p in ledger.positions:
        armed = " [breakeven armed]" if p.breakeven_armed else ""
        typer.echo(
            f"  {p.side.value:<4} {p.market_id}  {p.shares:.2f} @ {p.entry_price:.3f}  "
            f"cost ${p.cost_basis:.2f}  opened {format_timestamp(p.entry_timestamp)}{armed}"
        )


def reset_breaker(state: _StateOption = None, config_dir: _ConfigDirOption = None) -> None:
    """Clear the consecutive-loss circuit breaker in the state file."""
    loader = load_settings(config_dir)
    config = build_engine_config(loader)
    store = build_state_store(loader, state, config.initial_balance)
    ledger = load_ledger(store)

    previous = ledger.consecutive_losses
    ledger.reset_circuit_breaker()
    if not store.save(ledger):
        typer.echo(f"Error: could not write {store.path}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Circuit breaker reset (was {previous} consecutive losses).")
