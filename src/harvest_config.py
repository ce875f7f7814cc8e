"""Runtime configuration: defaults, optional YAML file, CLI overrides.

Precedence is CLI > config file > Constants defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from constants import Constants

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Invalid configuration file or value."""


@dataclass
class HarvestConfig:
    """Settings for one harvest run."""

    package_id: str = ""
    exact_match: bool = False
    output_dir: str = Constants.DOWNLOAD_DIRECTORY
    source: str = Constants.REGISTRY_URL_NUGET_V3
    platforms: List[str] = field(default_factory=lambda: list(Constants.PLATFORM_PREFIXES))
    search_frameworks: List[str] = field(default_factory=lambda: list(Constants.SEARCH_FRAMEWORKS))
    max_parallelism: int = Constants.MAX_PARALLELISM
    take: int = Constants.SEARCH_TAKE
    timeout: int = Constants.REQUEST_TIMEOUT

    _FILE_KEYS = {
        "output_dir": str,
        "source": str,
        "platforms": list,
        "search_frameworks": list,
        "max_parallelism": int,
        "take": int,
        "timeout": int,
        "exact_match": bool,
    }

    @classmethod
    def load(cls, config_path: Optional[str]) -> "HarvestConfig":
        """Build a config from a YAML file; missing path means defaults.

        The file may hold the settings at top level or under a ``harvest:`` key.

        Raises:
            ConfigError: If the file cannot be read or holds invalid values.
        """
        config = cls()
        if not config_path:
            return config
        if not os.path.isfile(config_path):
            raise ConfigError(f"Config file not found: {config_path}")
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")
        config.apply(data.get(Constants.CONFIG_SECTION, data))
        logger.info("Loaded config from: %s", config_path)
        return config

    def apply(self, values: Dict[str, Any]) -> None:
        """Apply known keys from a mapping, converting types; unknown keys are logged and ignored."""
        for key, value in values.items():
            kind = self._FILE_KEYS.get(key)
            if kind is None:
                logger.warning("Ignoring unknown config key: %s", key)
                continue
            if value is None:
                continue
            if kind is list:
                value = [value] if isinstance(value, str) else list(value)
                value = [str(v) for v in value]
            elif kind is int:
                try:
                    value = int(value)
                except (TypeError, ValueError) as e:
                    raise ConfigError(f"{key} must be an integer, got {value!r}") from e
            elif kind is bool:
                value = bool(value)
            else:
                value = str(value)
            setattr(self, key, value)

    @classmethod
    def from_args(cls, args: Any) -> "HarvestConfig":
        """Create config from CLI arguments layered over the optional config file.

        Args:
            args: Parsed CLI arguments namespace.

        Returns:
            Validated HarvestConfig instance.
        """
        config = cls.load(getattr(args, "CONFIG", None))
        config.package_id = (getattr(args, "PACKAGE_ID", None) or "").strip()

        if getattr(args, "EXACT_MATCH", False):
            config.exact_match = True
        if getattr(args, "OUTPUT_DIR", None):
            config.output_dir = args.OUTPUT_DIR
        if getattr(args, "SOURCE", None):
            config.source = args.SOURCE
        if getattr(args, "PLATFORMS", None):
            config.platforms = list(args.PLATFORMS)
        if getattr(args, "SEARCH_FRAMEWORKS", None):
            config.search_frameworks = list(args.SEARCH_FRAMEWORKS)
        if getattr(args, "MAX_PARALLELISM", None) is not None:
            config.max_parallelism = int(args.MAX_PARALLELISM)
        if getattr(args, "TAKE", None) is not None:
            config.take = int(args.TAKE)
        if getattr(args, "TIMEOUT", None) is not None:
            config.timeout = int(args.TIMEOUT)

        config.validate()
        return config

    def validate(self) -> None:
        """Raise ConfigError for values the traversal cannot run with."""
        if self.max_parallelism < 1:
            raise ConfigError("max_parallelism must be at least 1")
        if self.take < 1:
            raise ConfigError("take must be at least 1")
        if self.timeout < 1:
            raise ConfigError("timeout must be at least 1 second")
        if not [p for p in self.platforms if p]:
            raise ConfigError("at least one platform prefix is required")
        if not self.output_dir:
            raise ConfigError("output_dir must not be empty")
