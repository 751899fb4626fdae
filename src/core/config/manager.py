"""
ConfigManager: dynamic, cache-backed community configuration access.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable community settings
  (invitation expiry, member caps, permission table overrides).
- Back configuration with code defaults, YAML files and database overrides.
- Allow operators to change settings without a redeploy.

Responsibilities
----------------
- Load and deep-merge YAML files from the configured `config/` directory.
- Overlay `community_config` rows (database overrides) on top of YAML.
- Serve reads from an in-memory cache.
- Persist writes transactionally with pessimistic locking and refresh the cache.

Key Design Decisions
--------------------
- Precedence: code defaults < YAML < database.
- Top-level config keys map to rows in `community_config`; nested keys are
  stored as nested dictionaries in `config_value`.
- Reads never touch the database; `refresh()` re-reads overrides on demand.
- Class-level state (no instantiation), matching the static `Config`.
"""

from __future__ import annotations

import asyncio
import copy
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

import yaml
from sqlalchemy import select

from src.core.config.config import Config
from src.core.exceptions import ConfigurationError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


# Built-in fallbacks; YAML under config/ is the primary source of defaults.
BUILTIN_DEFAULTS: Dict[str, Any] = {
    "community": {
        "invitations": {"expiry_days": 7},
        "join_requests": {"expiry_days": 14},
        "guilds": {"default_max_members": 50, "max_members_limit": 500},
        "parties": {"default_max_members": 6, "max_members_limit": 20},
        "posts": {
            "max_title_length": 200,
            "max_content_length": 20_000,
            "max_comment_length": 5_000,
            "max_tags": 10,
            "max_attachments": 10,
        },
        "stash": {"max_title_length": 200, "max_tags": 10},
    },
    "core": {
        "event": {"listener_timeout": {"critical_seconds": 5, "high_seconds": 5}},
    },
}


class ConfigManager:
    """
    Dynamic configuration management with database backing and caching.

    Usage
    -----
    >>> await ConfigManager.initialize()
    >>> ConfigManager.get("community.invitations.expiry_days", 7)
    7
    >>> await ConfigManager.set("community.invitations.expiry_days", 3, modified_by="ops")
    """

    _cache: Dict[str, Any] = {}
    _defaults: Dict[str, Any] = {}
    _initialized: bool = False
    _init_lock: asyncio.Lock = asyncio.Lock()

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(target: MutableMapping[str, Any], source: MutableMapping[str, Any]) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    @classmethod
    def load_defaults(cls, config_dir: Optional[Path] = None) -> None:
        """
        Rebuild defaults from built-ins plus every YAML file under `config_dir`.

        Resets the cache to the merged defaults. Database overrides are applied
        separately by `initialize()` / `refresh()`.

        Raises:
            ConfigurationError: If a YAML file cannot be parsed or its root is
                not a mapping.
        """
        directory = Path(config_dir) if config_dir is not None else Path(Config.CONFIG_DIR)

        defaults: Dict[str, Any] = copy.deepcopy(BUILTIN_DEFAULTS)

        if not directory.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(directory)},
            )
        else:
            yaml_files = sorted(list(directory.rglob("*.yaml")) + list(directory.rglob("*.yml")))
            for yaml_file in yaml_files:
                try:
                    with yaml_file.open("r", encoding="utf-8") as handle:
                        data = yaml.safe_load(handle)
                except yaml.YAMLError as exc:
                    raise ConfigurationError(str(yaml_file), f"invalid YAML: {exc}") from exc

                if data is None:
                    continue
                if not isinstance(data, dict):
                    raise ConfigurationError(
                        str(yaml_file), f"root must be a mapping, got {type(data).__name__}"
                    )

                cls._deep_merge_dict(defaults, data)
                logger.debug("Loaded YAML config", extra={"file": str(yaml_file)})

            logger.info(
                "YAML configs loaded",
                extra={"yaml_file_count": len(yaml_files), "config_dir": str(directory)},
            )

        cls._defaults = defaults
        cls._cache = copy.deepcopy(defaults)
        cls._initialized = True

    # =========================================================================
    # INITIALIZATION / REFRESH
    # =========================================================================

    @classmethod
    async def initialize(cls, config_dir: Optional[Path] = None, *, load_overrides: bool = True) -> None:
        """
        Initialize from YAML and (optionally) database overrides. Idempotent.
        """
        if cls._initialized and cls._defaults:
            return

        async with cls._init_lock:
            if cls._initialized and cls._defaults:
                return

            cls.load_defaults(config_dir)
            if load_overrides:
                await cls.refresh()

            logger.info(
                "ConfigManager initialized",
                extra={"top_level_keys": cls.get_all_keys(), "overrides": load_overrides},
            )

    @classmethod
    async def refresh(cls) -> int:
        """Re-apply every database override onto the defaults. Returns the override count."""
        from src.core.database.service import DatabaseService
        from src.database.models.core.community_config import CommunityConfig

        async with DatabaseService.get_session() as session:
            result = await session.execute(select(CommunityConfig))
            overrides: List[CommunityConfig] = list(result.scalars().all())

        cache = copy.deepcopy(cls._defaults)
        for row in overrides:
            cache[row.config_key] = copy.deepcopy(row.config_value)
        cls._cache = cache

        logger.debug("ConfigManager overrides applied", extra={"override_count": len(overrides)})
        return len(overrides)

    # =========================================================================
    # READ API
    # =========================================================================

    @staticmethod
    def _traverse(root: Dict[str, Any], key: str) -> Any:
        value: Any = root
        for part in key.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(part)
            if value is None:
                return None
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Falls back to defaults when an override replaced a whole top-level
        section without the requested leaf, then to ``default``.
        """
        if not cls._initialized:
            logger.warning("ConfigManager accessed before initialization; loading defaults only")
            cls.load_defaults()

        value = cls._traverse(cls._cache, key)
        if value is None:
            value = cls._traverse(cls._defaults, key)
        return default if value is None else value

    @classmethod
    def get_all_keys(cls) -> List[str]:
        return list(cls._cache.keys())

    # =========================================================================
    # WRITE API
    # =========================================================================

    @classmethod
    async def set(cls, key: str, value: Any, modified_by: str = "system") -> None:
        """
        Persist an override for ``key`` and update the cache.

        Runs inside `DatabaseService.get_transaction()` and locks the
        top-level row with ``SELECT ... FOR UPDATE``.
        """
        from src.core.database.service import DatabaseService
        from src.database.models.core.community_config import CommunityConfig

        parts = key.split(".")
        top_key = parts[0]

        async with DatabaseService.get_transaction() as session:
            stmt = select(CommunityConfig).where(CommunityConfig.config_key == top_key).with_for_update()
            row: Optional[CommunityConfig] = (await session.execute(stmt)).scalar_one_or_none()

            if row is not None and isinstance(row.config_value, dict):
                base: Any = copy.deepcopy(row.config_value)
            else:
                base = copy.deepcopy(cls._defaults.get(top_key, {}))

            if len(parts) > 1:
                if not isinstance(base, dict):
                    base = {}
                current = base
                for segment in parts[1:-1]:
                    nested = current.get(segment)
                    if not isinstance(nested, dict):
                        nested = {}
                        current[segment] = nested
                    current = nested
                current[parts[-1]] = value
                final_value = base
            else:
                final_value = value

            if row is None:
                session.add(
                    CommunityConfig(config_key=top_key, config_value=final_value, modified_by=modified_by)
                )
            else:
                row.config_value = final_value
                row.modified_by = modified_by

        cls._cache[top_key] = final_value
        logger.info(
            "Configuration updated",
            extra={"config_key": key, "top_level_key": top_key, "modified_by": modified_by},
        )

    @classmethod
    def clear_cache(cls) -> None:
        """Reset all state. Intended for tests."""
        cls._cache = {}
        cls._defaults = {}
        cls._initialized = False
