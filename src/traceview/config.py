"""traceview configuration management.

Handles:
- .env file loading, discovered by walking up from the working directory
- optional YAML config file (traceview.yaml)
- precedence: CLI > config file > .env > env vars
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from traceview.errors import ConfigError, ErrorCode

CONFIG_FILE_NAME = "traceview.yaml"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass
class Config:
    """traceview runtime configuration."""

    use_utc: bool = False
    service_name: str | None = None
    max_workers: int = 1
    schema_validation: bool = True
    log_level: str = "WARNING"
    env_file_path: Path | None = None
    config_file_path: Path | None = None

    def is_parallel(self) -> bool:
        """Check if trace batches should be summarized in parallel."""
        return self.max_workers > 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "use_utc": self.use_utc,
            "service_name": self.service_name,
            "max_workers": self.max_workers,
            "schema_validation": self.schema_validation,
            "log_level": self.log_level,
            "env_file_path": str(self.env_file_path) if self.env_file_path else None,
            "config_file_path": str(self.config_file_path) if self.config_file_path else None,
        }


def parse_env_file(env_file: Path) -> dict[str, str]:
    """Parse a .env file into a dictionary.

    Supports:
    - KEY=value
    - KEY="quoted value"
    - KEY='single quoted'
    - export KEY=value
    - # comments
    - Empty lines
    """
    result: dict[str, str] = {}

    if not env_file.exists():
        return result

    for line in env_file.read_text(encoding="utf-8").splitlines():
        line = line.strip()

        # Skip empty lines and comments
        if not line or line.startswith("#"):
            continue

        if line.startswith("export "):
            line = line[7:]

        # Skip lines without =
        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()

        # Remove quotes
        if (value.startswith('"') and value.endswith('"')) or (
            value.startswith("'") and value.endswith("'")
        ):
            value = value[1:-1]

        result[key] = value

    return result


def _find_env_file(start: Path | None = None) -> Path | None:
    """Find .env file by walking up directory tree.

    Stops at git root, home directory, or filesystem root.
    Returns None if not found.
    """
    current = (start or Path.cwd()).resolve()

    try:
        home = Path.home()
    except RuntimeError:
        home = None  # Can't determine home, just walk to root

    for _ in range(20):  # Max depth
        env_file = current / ".env"
        if env_file.exists():
            return env_file

        # Stop conditions
        if home and current == home:
            break
        if current == current.parent:
            break

        # Stop at git root (but check .env first)
        if (current / ".git").exists():
            break

        current = current.parent

    return None


def load_config_file(config_file: Path) -> dict[str, Any]:
    """Load a YAML config file.

    Raises:
        ConfigError: If the file is missing, not valid YAML or not a mapping.
    """
    if not config_file.exists():
        raise ConfigError(ErrorCode.E001, str(config_file))
    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(ErrorCode.E002, f"{config_file}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(ErrorCode.E002, f"{config_file}: top level must be a mapping")
    return data


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(ErrorCode.E007, f"{name}={value!r} is not a boolean")


def _parse_int(name: str, value: Any) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(ErrorCode.E007, f"{name}={value!r} is not an integer") from e
    if result < 1:
        raise ConfigError(ErrorCode.E007, f"{name}={value!r} must be at least 1")
    return result


# Environment variable -> config key
ENV_KEYS = {
    "TRACEVIEW_UTC": "use_utc",
    "TRACEVIEW_SERVICE_NAME": "service_name",
    "TRACEVIEW_MAX_WORKERS": "max_workers",
    "TRACEVIEW_VALIDATE": "schema_validation",
    "TRACEVIEW_LOG_LEVEL": "log_level",
}


def load_config(
    env_file: str | Path | None = None,
    config_file: str | Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> Config:
    """Load configuration with precedence: CLI > config file > .env > env vars.

    Args:
        env_file: Path to .env file to load (discovered when omitted)
        config_file: Path to a YAML config file (``traceview.yaml`` in the
            working directory is used when present and this is omitted)
        cli_overrides: Values given on the command line; None values are ignored

    Returns:
        Loaded Config instance
    """
    cli_overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}

    # Step 1: Environment variables as base, then .env on top
    env_vars = dict(os.environ)
    env_file_path: Path | None = Path(env_file) if env_file else _find_env_file()
    if env_file_path and env_file_path.exists():
        env_vars.update(parse_env_file(env_file_path))
    else:
        env_file_path = None

    values: dict[str, Any] = {}
    for env_key, key in ENV_KEYS.items():
        if env_key in env_vars:
            values[key] = env_vars[env_key]

    # Step 2: YAML config file
    config_file_path: Path | None = None
    if config_file:
        config_file_path = Path(config_file)
        values.update(load_config_file(config_file_path))
    elif (Path.cwd() / CONFIG_FILE_NAME).exists():
        config_file_path = Path.cwd() / CONFIG_FILE_NAME
        values.update(load_config_file(config_file_path))

    # Step 3: CLI overrides
    values.update(cli_overrides)

    config = Config(env_file_path=env_file_path, config_file_path=config_file_path)
    if "use_utc" in values:
        config.use_utc = _parse_bool("use_utc", values["use_utc"])
    if values.get("service_name"):
        config.service_name = str(values["service_name"])
    if "max_workers" in values:
        config.max_workers = _parse_int("max_workers", values["max_workers"])
    if "schema_validation" in values:
        config.schema_validation = _parse_bool("schema_validation", values["schema_validation"])
    if values.get("log_level"):
        config.log_level = str(values["log_level"]).upper()
    return config


# Global config instance (set by CLI)
_config: Config | None = None


def get_config() -> Config:
    """Get the current configuration.

    Raises:
        RuntimeError: If config not initialized (call load_config first)
    """
    if _config is None:
        raise RuntimeError("Config not initialized. Call load_config() first.")
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration."""
    global _config
    _config = config
