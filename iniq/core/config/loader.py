"""
Configuration loader — merges ``~/.iniq.yaml``, ``INIQ_*`` env and CLI flags.

Precedence (highest first):
    flags given on the command line  >  INIQ_* env vars  >  config file  >  defaults

The config file is a flat YAML mapping using the CLI option names::

    user: deploy
    keys:
      - github:alice
    ssh-root-login: no
    backup: true
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from iniq.core.models.options import Options

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("~/.iniq.yaml")
ENV_PREFIX = "INIQ_"

# Keys a user may set through the file or environment.
CONFIG_KEYS = tuple(
    name.replace("_", "-")
    for name in Options.model_fields
    if name not in ("derived", "interactive")
)

_BOOL_KEYS = {
    "ssh-no-root",
    "ssh-no-password",
    "sudo-nopasswd",
    "skip-sudo",
    "all",
    "password",
    "no-password",
    "backup",
    "yes",
    "dry-run",
}

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


class ConfigError(Exception):
    """Raised when configuration is invalid or unreadable."""


def load_config_file(path: Path | None = None) -> dict[str, Any]:
    """Read the YAML config file.

    Args:
        path: Explicit path (must exist). If None, ``~/.iniq.yaml`` is
            used when present.

    Returns:
        Mapping of option name to value (hyphenated keys).

    Raises:
        ConfigError: If the file is missing (explicit path only),
            unreadable, not a mapping, or contains unknown keys.
    """
    explicit = path is not None
    path = (path or DEFAULT_CONFIG_FILE).expanduser()

    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        logger.debug("No config file at %s", path)
        return {}

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    values = {str(k).replace("_", "-"): v for k, v in data.items()}
    unknown = sorted(set(values) - set(CONFIG_KEYS))
    if unknown:
        raise ConfigError(f"Unknown option(s) in {path}: {', '.join(unknown)}")

    # "ssh-root-login: no" parses as a YAML boolean; the option is a string
    for key in ("ssh-root-login", "ssh-password-auth"):
        if isinstance(values.get(key), bool):
            values[key] = "yes" if values[key] else "no"

    logger.debug("Loaded %d option(s) from %s", len(values), path)
    return values


def load_env(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect ``INIQ_<OPTION>`` variables (e.g. ``INIQ_SSH_ROOT_LOGIN``)."""
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for key in CONFIG_KEYS:
        env_name = ENV_PREFIX + key.replace("-", "_").upper()
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        if key in _BOOL_KEYS:
            token = raw.strip().lower()
            if token in _TRUE:
                values[key] = True
            elif token in _FALSE:
                values[key] = False
            else:
                raise ConfigError(f"Invalid boolean for {env_name}: {raw!r}")
        elif key == "keys":
            values[key] = [p.strip() for p in raw.replace(",", ";").split(";") if p.strip()]
        else:
            values[key] = raw
    return values


def build_options(
    file_values: Mapping[str, Any] | None = None,
    env_values: Mapping[str, Any] | None = None,
    cli_values: Mapping[str, Any] | None = None,
) -> Options:
    """Merge the three layers into a validated ``Options``.

    Raises:
        ConfigError: If the merged values do not validate.
    """
    merged: dict[str, Any] = {}
    for layer in (file_values, env_values, cli_values):
        if layer:
            merged.update(layer)
    try:
        return Options.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def dump_options(options: Options) -> str:
    """YAML rendering of the effective options."""
    return yaml.safe_dump(options.to_dict(), sort_keys=False, default_flow_style=False)
