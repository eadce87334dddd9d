"""CLI command for replaying recorded ticks through the paper engine.

Load a JSON Lines tick file, run every tick through a ``PaperTradingEngine``
configured from the YAML settings, and print the trades and summary
metrics. Optionally persist the ledger, log trades to SQL and post Discord
notifications while replaying.
"""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from updown_trader.apps.cli._helpers import (
    build_engine_config,
    build_state_store,
    configure_verbose_logging,
    load_ledger,
    load_settings,
)
from updown_trader.apps.notifications.discord import DiscordNotifier
from updown_trader.apps.paper_engine.engine import PaperTradingEngine
from updown_trader.apps.paper_engine.models import EngineConfig, EventType, TickInput
from updown_trader.apps.paper_engine.protocols import TradeEventSink
from updown_trader.apps.paper_engine.replay import ReplayResult, load_ticks
from updown_trader.apps.paper_engine.replay import replay as run_replay
from updown_trader.apps.trade_log.repository import TradeRepository
from updown_trader.core.config import ConfigLoader
from updown_trader.core.timestamps import format_timestamp


def replay(  # noqa: PLR0913
    ticks_file: Annotated[Path, typer.Argument(help="JSON Lines file of recorded ticks")],
    state: Annotated[
        Path | None,
        typer.Option(help="Persist the ledger to this state file (default: in-memory)"),
    ] = None,
    config_dir: Annotated[
        Path | None, typer.Option(help="Directory holding settings.yaml")
    ] = None,
    trade_log: Annotated[
        str | None,
        typer.Option(help="SQLAlchemy URL to log trades to (e.g. sqlite+aiosqlite:///t.db)"),
    ] = None,
    log_trades: Annotated[  # noqa: FBT002
        bool, typer.Option("--log-trades", help="Log trades to trade_log.db_url from settings")
    ] = False,
    notify: Annotated[  # noqa: FBT002
        bool, typer.Option("--notify", help="Post trades to the configured Discord webhook")
    ] = False,
    verbose: Annotated[  # noqa: FBT002
        bool, typer.Option("--verbose", "-v", help="Enable tick-by-tick logging")
    ] = False,
) -> None:
    """Replay recorded ticks through the paper trading engine.

    Without ``--state`` the run starts from a fresh ledger holding the
    configured initial balance and nothing is written to disk.
    """
    if verbose:
        configure_verbose_logging()

    if not ticks_file.exists():
        typer.echo(f"Error: tick file not found: {ticks_file}", err=True)
        raise typer.Exit(code=1)

    loader = load_settings(config_dir)
    config = build_engine_config(loader)
    ticks = load_ticks(ticks_file)
    if not ticks:
        typer.echo(f"Error: no valid ticks in {ticks_file}", err=True)
        raise typer.Exit(code=1)

    if state is not None:
        store = build_state_store(loader, state, config.initial_balance)
        engine = PaperTradingEngine(config, store=store, ledger=load_ledger(store))
    else:
        engine = PaperTradingEngine(config)

    typer.echo(f"Replaying {len(ticks)} ticks from {ticks_file}")
    typer.echo(f"Starting balance: ${engine.ledger.balance:.2f}")
    typer.echo("")

    if trade_log is None and log_trades:
        trade_log = loader.trade_log_url()
    result = asyncio.run(
        _replay(engine, ticks, loader=loader, trade_log=trade_log, notify=notify)
    )
    _print_result(result, config)


async def _replay(
    engine: PaperTradingEngine,
    ticks: list[TickInput],
    *,
    loader: ConfigLoader,
    trade_log: str | None,
    notify: bool,
) -> ReplayResult:
    """Run the replay with the requested sinks and release them afterwards."""
    sinks: list[TradeEventSink] = []
    repository: TradeRepository | None = None
    notifier: DiscordNotifier | None = None
    if trade_log:
        repository = TradeRepository(trade_log)
        await repository.init_db()
        sinks.append(repository)
    if notify:
        notifier = DiscordNotifier(loader.discord_webhook_url())
        if notifier.enabled:
            sinks.append(notifier)
        else:
            typer.echo("Warning: --notify given but no Discord webhook configured", err=True)

    try:
        return await run_replay(engine, ticks, sinks=sinks)
    finally:
        if repository is not None:
            await repository.close()
        if notifier is not None:
            await notifier.close()


def _print_result(result: ReplayResult, config: EngineConfig) -> None:
    """Print the trade list and summary metrics."""
    for event in result.events:
        when = format_timestamp(event.timestamp)
        if event.type is EventType.OPEN:
            typer.echo(
                f"{when}  OPEN  {event.side.value:<4} @ {event.price:.3f}  "
                f"amount ${event.amount:.2f} fee ${event.fee:.2f}  {event.market_id}"
            )
        else:
            typer.echo(
                f"{when}  CLOSE {event.side.value:<4} @ {event.price:.3f}  "
                f"pnl {event.pnl:+.2f} ({event.reason})  balance ${event.balance_after:.2f}"
            )

    typer.echo("\n--- Replay Results ---")
    typer.echo(f"Ticks processed: {result.ticks_processed}")
    typer.echo(f"Initial balance: ${result.initial_balance:.2f}")
    typer.echo(f"Final balance:   ${result.final_balance:.2f}")
    typer.echo(f"Fee rate: {config.fee_pct}%")

    if result.metrics:
        typer.echo("\nMetrics:")
        for key, value in result.metrics.items():
            typer.echo(f"  {key}: {value:.4f}")
