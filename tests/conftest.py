"""Shared test configuration and fixtures."""

import os
from collections.abc import Iterator
from unittest.mock import patch

import pytest

_SETTINGS_ENV_VARS = (
    "PAPER_BALANCE",
    "PAPER_MAX_CONSECUTIVE_LOSSES",
    "PAPER_STATE_PATH",
    "DISCORD_WEBHOOK_URL",
    "TRADE_LOG_DB_URL",
)


@pytest.fixture(autouse=True)
def _isolate_settings_env_vars() -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    """Hide operator overrides of the variables referenced by settings.yaml.

    The bundled configuration reads ``${PAPER_BALANCE:100}`` and friends, so
    a developer shell (or a ``.env`` file) exporting them would change the
    defaults every test relies on. Strip them for the duration of each test.
    """
    with patch.dict(os.environ, {}, clear=False):
        for name in _SETTINGS_ENV_VARS:
            os.environ.pop(name, None)
        yield
