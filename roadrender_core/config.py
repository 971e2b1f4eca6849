"""RoadRender Config - Engine Settings and Policy Loading.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Configuration is a YAML document with an ``engine`` section and a
``routes`` list::

    engine:
      capacity: 2048
      fetch_timeout_seconds: 5
    routes:
      - pattern: "/about"
        mode: static
      - pattern: "/blog/*"
        mode: incremental
        ttl_seconds: 3600
        stale_grace_seconds: 300
      - pattern: "*"
        mode: dynamic

``ROADRENDER_*`` environment variables override engine settings.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

from roadrender_core.errors import ConfigurationError
from roadrender_core.policy.table import PolicyTable


@dataclass
class EngineConfig:
    """Engine configuration.

    Attributes:
        name: Engine name used in logs
        capacity: Maximum cached entries
        fetch_timeout_seconds: Deadline for one origin call
        fetch_workers: Concurrent origin calls
        revalidation_workers: Background refresh threads
        backoff_base_seconds: First retry delay for background refresh
        backoff_max_seconds: Retry delay cap
        max_revalidation_attempts: Background attempts before giving up
        error_grace_seconds: Extra stale window while revalidation fails
        join_timeout_seconds: Max wait for another caller's fetch; None waits
    """

    name: str = "roadrender"
    capacity: int = 1024
    fetch_timeout_seconds: float = 10.0
    fetch_workers: int = 8
    revalidation_workers: int = 4
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 60.0
    max_revalidation_attempts: int = 5
    error_grace_seconds: float = 600.0
    join_timeout_seconds: Optional[float] = None

    def validate(self) -> None:
        """Reject settings the engine cannot run with.

        Raises:
            ConfigurationError: On out-of-range values
        """
        if self.capacity <= 0:
            raise ConfigurationError("capacity must be positive")
        if self.fetch_timeout_seconds <= 0:
            raise ConfigurationError("fetch_timeout_seconds must be positive")
        if self.fetch_workers <= 0 or self.revalidation_workers <= 0:
            raise ConfigurationError("worker counts must be positive")
        if self.backoff_base_seconds < 0 or self.backoff_max_seconds < self.backoff_base_seconds:
            raise ConfigurationError("backoff must satisfy 0 <= base <= max")
        if self.max_revalidation_attempts <= 0:
            raise ConfigurationError("max_revalidation_attempts must be positive")
        if self.error_grace_seconds < 0:
            raise ConfigurationError("error_grace_seconds must not be negative")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngineConfig":
        """Create from a config mapping; missing keys keep their defaults.

        Raises:
            ConfigurationError: On unknown keys or bad values
        """
        known = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(known)
        if unknown:
            raise ConfigurationError(f"Unknown engine settings: {sorted(unknown)}")

        defaults = cls()
        values: Dict[str, Any] = {}
        for name, value in data.items():
            if value is None:
                values[name] = None if name == "join_timeout_seconds" else getattr(defaults, name)
                continue
            default = getattr(defaults, name)
            try:
                if name == "name":
                    values[name] = str(value)
                elif isinstance(default, int):
                    values[name] = int(value)
                else:
                    values[name] = float(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid value for {name}: {value!r}") from e

        config = cls(**values)
        config.validate()
        return config


ENV_MAP = {
    "name": "ROADRENDER_NAME",
    "capacity": "ROADRENDER_CAPACITY",
    "fetch_timeout_seconds": "ROADRENDER_FETCH_TIMEOUT_SECONDS",
    "fetch_workers": "ROADRENDER_FETCH_WORKERS",
    "revalidation_workers": "ROADRENDER_REVALIDATION_WORKERS",
    "backoff_base_seconds": "ROADRENDER_BACKOFF_BASE_SECONDS",
    "backoff_max_seconds": "ROADRENDER_BACKOFF_MAX_SECONDS",
    "max_revalidation_attempts": "ROADRENDER_MAX_REVALIDATION_ATTEMPTS",
    "error_grace_seconds": "ROADRENDER_ERROR_GRACE_SECONDS",
    "join_timeout_seconds": "ROADRENDER_JOIN_TIMEOUT_SECONDS",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping: {path}")
    return data


def merge_env_overrides(
    config_data: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Apply ``ROADRENDER_*`` overrides to the engine section.

    Args:
        config_data: Parsed config document
        environ: Environment mapping (``os.environ`` by default)

    Returns:
        New document with overrides applied
    """
    environ = os.environ if environ is None else environ
    merged = copy.deepcopy(config_data)
    engine = merged.get("engine") or {}

    for key, env_name in ENV_MAP.items():
        if env_name in environ:
            engine[key] = environ[env_name]

    merged["engine"] = engine
    return merged


def parse_config(data: Mapping[str, Any]) -> Tuple[EngineConfig, PolicyTable]:
    """Build engine settings and policy table from a document.

    Raises:
        ConfigurationError: If either section is invalid
    """
    engine = data.get("engine") or {}
    if not isinstance(engine, Mapping):
        raise ConfigurationError("'engine' must be a mapping")

    routes = data.get("routes")
    if not routes or not isinstance(routes, list):
        raise ConfigurationError("'routes' must be a non-empty list")

    return EngineConfig.from_dict(engine), PolicyTable.from_dict(routes)


def load_config(
    config_path: Union[str, Path] = "config/roadrender.yml",
) -> Tuple[EngineConfig, PolicyTable]:
    """Load and validate engine configuration.

    Args:
        config_path: YAML config file

    Returns:
        (EngineConfig, PolicyTable)

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigurationError: If the configuration is invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = load_yaml(path)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    return parse_config(merge_env_overrides(data))


__all__ = [
    "EngineConfig",
    "ENV_MAP",
    "load_config",
    "load_yaml",
    "merge_env_overrides",
    "parse_config",
]
