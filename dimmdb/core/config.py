"""Configuration loading with layered overrides."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from dimmdb.core.bucket import BucketConfig, ConfigError, parse_bucket_config

__all__ = [
    "ConfigError",
    "DimmConfig",
    "config_paths",
    "load_config_file",
    "load_layered_config",
    "resolve_dimm_config",
]

SECTION = "dimm"

DEFAULT_CE_THRESHOLD = "10 / 24h"
DEFAULT_UC_THRESHOLD = "1 / 24h"

TRUE_STRINGS = {"1", "yes", "true", "on"}
FALSE_STRINGS = {"0", "no", "false", "off"}


@dataclass(frozen=True)
class DimmConfig:
    """Resolved settings for DIMM error tracking."""

    # None: follow hardware support
    tracking_enabled: bool | None = None
    prepopulate: bool = True
    ce: BucketConfig = field(default_factory=lambda: parse_bucket_config(DEFAULT_CE_THRESHOLD))
    uc: BucketConfig = field(default_factory=lambda: parse_bucket_config(DEFAULT_UC_THRESHOLD))


def load_config_file(path: Path) -> dict[str, Any]:
    """Load a YAML config file if it exists."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def config_paths() -> list[Path]:
    """Config files in precedence order: project, user, system."""
    return [
        Path(".dimmdb.yaml"),
        Path.home() / ".config" / "dimmdb" / "config.yaml",
        Path("/etc/dimmdb/config.yaml"),
    ]


def load_layered_config(paths: list[Path] | None = None) -> dict[str, Any]:
    """
    Merge the dimm section of several config files.

    Earlier paths win key by key.
    """
    if paths is None:
        paths = config_paths()

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        section = load_config_file(path).get(SECTION)
        if isinstance(section, dict):
            merged.update(section)
    return merged


def _as_bool(section: dict[str, Any], key: str) -> bool | None:
    value = section.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ConfigError(f"{SECTION}.{key}: expected a boolean, got {value!r}")


def _bucket(section: dict[str, Any], base: str, default: str) -> BucketConfig:
    threshold = section.get(f"{base}-threshold", default)
    trigger = section.get(f"{base}-trigger") or None
    if trigger is not None and not isinstance(trigger, str):
        raise ConfigError(f"{SECTION}.{base}-trigger: expected a program path, got {trigger!r}")
    try:
        return parse_bucket_config(threshold, trigger=trigger)
    except ConfigError as e:
        raise ConfigError(f"{SECTION}.{base}-threshold: {e}") from e


def resolve_dimm_config(section: dict[str, Any]) -> DimmConfig:
    """
    Build a DimmConfig from the merged dimm section.

    Raises:
        ConfigError: If a boolean, threshold or trigger value is malformed
    """
    prepopulate = _as_bool(section, "dmi-prepopulate")
    return DimmConfig(
        tracking_enabled=_as_bool(section, "dimm-tracking-enabled"),
        prepopulate=True if prepopulate is None else prepopulate,
        ce=_bucket(section, "ce-error", DEFAULT_CE_THRESHOLD),
        uc=_bucket(section, "uc-error", DEFAULT_UC_THRESHOLD),
    )
