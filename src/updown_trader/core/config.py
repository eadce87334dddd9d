"""Settings for the paper trader.

Settings live in ``settings.yaml`` inside the config directory, optionally
overlaid by an untracked ``settings.local.yaml``. String values of the form
``${VAR}`` or ``${VAR:default}`` are replaced from the environment, after a
``.env`` file (if any) has been loaded. The result is exposed through
dot-notation lookups plus typed accessors for the sections the CLI wires up.
"""

import os
import re
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv

_DEFAULT_CONFIG_DIR = Path(__file__).parent.parent / "config"
_SETTINGS_FILE = "settings.yaml"
_LOCAL_SETTINGS_FILE = "settings.local.yaml"
_DEFAULT_STATE_PATH = "state/paper_state.json"
_DEFAULT_TRADE_LOG_URL = "sqlite+aiosqlite:///logs/trades.db"

_ENV_REFERENCE = re.compile(r"^\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::(?P<default>.*))?\}$")
_EMBEDDED_REFERENCE = re.compile(r"\$\{[^}]+\}")


class ConfigError(Exception):
    """Raise when configuration loading or validation fails."""


def _read_yaml(path: Path) -> dict[str, Any]:
    """Parse one settings file, treating a missing or empty file as no settings."""
    if not path.exists():
        return {}
    try:
        with path.open(encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        msg = f"{path} is not valid YAML: {exc}"
        raise ConfigError(msg) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"{path} must contain a mapping at the top level, got {type(data).__name__}"
        raise ConfigError(msg)
    return cast("dict[str, Any]", data)


def _merged(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` overlaid by ``override``, merging nested sections key by key."""
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = _merged(cast("dict[str, Any]", current), cast("dict[str, Any]", value))
        else:
            result[key] = value
    return result


def _resolve_env(value: Any, where: str = "") -> Any:
    """Replace ``${VAR}`` / ``${VAR:default}`` references throughout ``value``.

    Args:
        value: Parsed settings node.
        where: Dotted path of ``value``, used in error messages.

    Returns:
        The node with every reference substituted.

    Raises:
        ConfigError: If a variable without default is unset, or a reference
            is embedded in a longer string.

    """
    if isinstance(value, dict):
        node = cast("dict[str, Any]", value)
        return {k: _resolve_env(v, f"{where}.{k}" if where else str(k)) for k, v in node.items()}
    if isinstance(value, list):
        items = cast("list[Any]", value)
        return [_resolve_env(item, f"{where}[{i}]") for i, item in enumerate(items)]
    if not isinstance(value, str):
        return value

    match = _ENV_REFERENCE.match(value)
    if match:
        name = match.group("name")
        resolved = os.getenv(name, match.group("default"))
        if resolved is None:
            msg = (
                f"Required environment variable ${{{name}}} for {where} "
                "is not set and has no default"
            )
            raise ConfigError(msg)
        return resolved
    if _EMBEDDED_REFERENCE.search(value):
        msg = f"Unresolved environment variable reference in {where}: {value}"
        raise ConfigError(msg)
    return value


class ConfigLoader:
    """Load the paper trader settings from a config directory.

    Args:
        config_dir: Directory holding ``settings.yaml``. Defaults to the
            settings bundled with the package.

    Raises:
        ConfigError: If a settings file is malformed or an environment
            reference cannot be resolved.

    """

    def __init__(self, config_dir: Path | None = None) -> None:
        """Load ``.env`` and the YAML settings."""
        load_dotenv()
        self.config_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
        raw = _merged(
            _read_yaml(self.config_dir / _SETTINGS_FILE),
            _read_yaml(self.config_dir / _LOCAL_SETTINGS_FILE),
        )
        self._config: dict[str, Any] = _resolve_env(raw)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key.

        Args:
            key: Configuration key in dot notation (e.g., 'state.path').
            default: Default value if key not found.

        Returns:
            Configuration value.

        """
        current: Any = self._config
        for part in key.split("."):
            if not isinstance(current, dict):
                return default
            current = cast("dict[str, Any]", current).get(part)
            if current is None:
                return default
        return current

    def get_section(self, name: str) -> dict[str, Any]:
        """Return a top-level configuration section as a dictionary.

        Args:
            name: Section name (e.g. ``"paper_engine"``).

        Returns:
            The section's mapping, or an empty dict when it is absent.

        Raises:
            ConfigError: If the section exists but is not a mapping.

        """
        result: Any = self.get(name, {})
        if isinstance(result, dict):
            return cast("dict[str, Any]", result)
        msg = f"{name} config must be a dict, got {type(result).__name__}"
        raise ConfigError(msg)

    def state_path(self) -> Path:
        """Return the ledger state file location (``state.path``)."""
        return Path(str(self.get("state.path", _DEFAULT_STATE_PATH)))

    def discord_webhook_url(self) -> str:
        """Return the Discord webhook URL, or an empty string when unset."""
        return str(self.get("notifications.discord_webhook_url", "")).strip()

    def trade_log_url(self) -> str:
        """Return the SQLAlchemy URL of the trade log database."""
        return str(self.get("trade_log.db_url", _DEFAULT_TRADE_LOG_URL))


_config: ConfigLoader | None = None


def get_config() -> ConfigLoader:
    """Return the global ``ConfigLoader`` singleton, creating it on first use.

    Returns:
        The shared ``ConfigLoader`` instance.

    """
    global _config  # noqa: PLW0603
    if _config is None:
        _config = ConfigLoader()
    return _config
