"""
ConfigManager: dot-notation access to tunable game balance values.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable game configuration.
- Back configuration with packaged YAML defaults plus an optional override file.
- Allow runtime overrides (admin tooling, tests) without redeploys.

Responsibilities
----------------
- Load the packaged `idleguild/data/game_config.yaml` defaults.
- Deep-merge an optional YAML file named by `Config.GAME_CONFIG_PATH`.
- Serve reads from an in-memory cache with hit/miss counters.
- Apply in-memory overrides via `set()` and drop them via `reset()`.

Key Design Decisions
--------------------
- YAML is the single source for **defaults**; overrides live in memory.
- Reads never raise: a missing key returns the caller's default.
- Accessed before `initialize()`, the manager lazily loads defaults.

Dependencies
------------
- PyYAML for parsing configuration files.
- `idleguild.core.config.config.Config` for the override file path.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional

import yaml

from idleguild.core.config.config import Config
from idleguild.core.logging.logger import get_logger

logger = get_logger(__name__)

_PACKAGED_DEFAULTS = Path(__file__).resolve().parents[2] / "data" / "game_config.yaml"


class ConfigManager:
    """
    Game configuration access with YAML defaults and runtime overrides.

    Example
    -------
    >>> ConfigManager.get("battle.minimum_bet")
    200
    >>> ConfigManager.set("battle.minimum_bet", 0)
    >>> ConfigManager.get("battle.minimum_bet")
    0
    """

    _defaults: Dict[str, Any] = {}
    _cache: Dict[str, Any] = {}
    _initialized: bool = False

    _metrics: Dict[str, int] = {"gets": 0, "cache_hits": 0, "cache_misses": 0, "sets": 0}

    # =========================================================================
    # YAML LOADING
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = value

    @classmethod
    def _load_yaml_file(cls, path: Path) -> Dict[str, Any]:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.warning(
                "Ignoring non-dict YAML root object",
                extra={"file": str(path), "root_type": type(data).__name__},
            )
            return {}
        return data

    @classmethod
    def _load_defaults(cls, override_path: Optional[str] = None) -> None:
        defaults = cls._load_yaml_file(_PACKAGED_DEFAULTS)

        override_path = override_path or Config.GAME_CONFIG_PATH
        if override_path:
            path = Path(override_path)
            if path.exists():
                cls._deep_merge_dict(defaults, cls._load_yaml_file(path))
                logger.info("Game config overrides loaded", extra={"file": str(path)})
            else:
                logger.warning(
                    "Game config override file not found; using packaged defaults",
                    extra={"file": str(path)},
                )

        cls._defaults = defaults
        cls._cache = copy.deepcopy(defaults)
        cls._initialized = True

        logger.info(
            "Game config loaded",
            extra={"top_level_keys": sorted(cls._cache.keys())},
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    async def initialize(cls, override_path: Optional[str] = None) -> None:
        """Load defaults and overrides (idempotent)."""
        if cls._initialized:
            return
        cls._load_defaults(override_path)

    @classmethod
    def reset(cls) -> None:
        """Drop all runtime overrides, restoring YAML defaults."""
        if not cls._initialized:
            cls._load_defaults()
            return
        cls._cache = copy.deepcopy(cls._defaults)
        logger.debug("Game config overrides cleared")

    # =========================================================================
    # READ / WRITE
    # =========================================================================

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Args:
            key: Dot-notation path such as `"battle.daily_limit"`
            default: Returned when the key does not exist

        Returns:
            The resolved value, or `default` if absent.
        """
        if not cls._initialized:
            cls._load_defaults()

        cls._metrics["gets"] += 1
        value: Any = cls._cache
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                cls._metrics["cache_misses"] += 1
                return default
            value = value[part]

        cls._metrics["cache_hits"] += 1
        return default if value is None else value

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """Override a configuration value in memory."""
        if not cls._initialized:
            cls._load_defaults()

        parts = key.split(".")
        node: Dict[str, Any] = cls._cache
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child

        old_value = node.get(parts[-1])
        node[parts[-1]] = value
        cls._metrics["sets"] += 1

        logger.info(
            "Game config value overridden",
            extra={"config_key": key, "old_value": old_value, "new_value": value},
        )

    @classmethod
    def get_metrics(cls) -> Dict[str, int]:
        return dict(cls._metrics)
