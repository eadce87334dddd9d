"""Shared helpers for paper trader CLI commands.

Centralise verbose logging setup and the construction of the engine
configuration and state store from the YAML settings, so every command
resolves them the same way.
"""

import logging
from decimal import Decimal
from pathlib import Path

import typer

from updown_trader.apps.paper_engine.exceptions import StateSchemaError
from updown_trader.apps.paper_engine.ledger import Ledger
from updown_trader.apps.paper_engine.models import EngineConfig
from updown_trader.apps.paper_engine.state_store import JsonStateStore
from updown_trader.core.config import ConfigError, ConfigLoader


def configure_verbose_logging() -> None:
    """Enable INFO-level logging for tick-by-tick engine output."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(config_dir: Path | None) -> ConfigLoader:
    """Load the YAML settings, aborting the command on a configuration error."""
    try:
        return ConfigLoader(config_dir)
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def build_engine_config(loader: ConfigLoader) -> EngineConfig:
    """Build the ``EngineConfig`` from the ``paper_engine`` settings section.

    Args:
        loader: Loaded settings.

    Returns:
        The validated engine configuration.

    """
    try:
        return EngineConfig.from_mapping(loader.get_section("paper_engine"))
    except (ConfigError, ValueError) as exc:
        typer.echo(f"Error: invalid paper_engine settings: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def build_state_store(
    loader: ConfigLoader, state: Path | None, initial_balance: Decimal
) -> JsonStateStore:
    """Build the JSON state store, preferring an explicit ``--state`` path.

    Args:
        loader: Loaded settings (``state.path`` is the fallback location).
        state: Path given on the command line, if any.
        initial_balance: Balance of a fresh ledger when no file exists.

    Returns:
        A ``JsonStateStore`` bound to the resolved path.

    """
    path = state if state is not None else loader.state_path()
    return JsonStateStore(path, initial_balance=initial_balance)


def load_ledger(store: JsonStateStore) -> Ledger:
    """Load the persisted ledger, aborting the command if it is corrupt."""
    try:
        return store.load()
    except StateSchemaError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
