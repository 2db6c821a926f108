"""
Configuration for the Max dialogue core

All tunable constants live in one frozen dataclass. Engines take an
optional CoreConfig and default to CoreConfig(); nothing reads
process-wide state.

A JSON file may override any subset of keys:

    {
        "stale_threshold_hours": 12,
        "reminder_turn_threshold": 3
    }

Unknown keys and nonsensical values are rejected (fail-fast).
"""

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

from companion.utils.helpers import SUPPORTED_LANGUAGES

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a configuration mapping is invalid"""
    pass


@dataclass(frozen=True)
class CoreConfig:
    """
    Tunable constants.

    Attributes:
        stale_threshold_hours: Data older than this is a data gap
        reminder_turn_threshold: Minimum turn count before the short reminder replaces full context
        minimal_citation_threshold: Cited sources at which citation style degrades to minimal
        min_fragment_length: Fragments shorter than this (characters) are noise
        max_fragment_length: Fragments longer than this are not short declarative facts
        brief_max_chars: Replies up to this length classify as 'brief'
        max_excluded_in_block: Already-cited titles listed in the context block
        max_details_in_summary: User details shown in the context summary
        endearment_cadence: An address term is offered every N turns
        default_language: Fallback for unsupported language codes
    """
    stale_threshold_hours: int = 24
    reminder_turn_threshold: int = 2
    minimal_citation_threshold: int = 2
    min_fragment_length: int = 4
    max_fragment_length: int = 120
    brief_max_chars: int = 80
    max_excluded_in_block: int = 3
    max_details_in_summary: int = 3
    endearment_cadence: int = 3
    default_language: str = "zh"

    def __post_init__(self):
        """Validate invariants. Fail-fast on any violation."""
        for spec in fields(self):
            value = getattr(self, spec.name)
            if spec.type is int:
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ConfigError(f"{spec.name} must be int, got {type(value).__name__}")
                if value < 0:
                    raise ConfigError(f"{spec.name} must be >= 0, got {value}")

        if self.endearment_cadence < 1:
            raise ConfigError("endearment_cadence must be >= 1")
        if self.max_fragment_length < self.min_fragment_length:
            raise ConfigError(
                f"max_fragment_length ({self.max_fragment_length}) "
                f"must be >= min_fragment_length ({self.min_fragment_length})"
            )
        if self.default_language not in SUPPORTED_LANGUAGES:
            raise ConfigError(
                f"default_language must be one of {SUPPORTED_LANGUAGES}, "
                f"got '{self.default_language}'"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CoreConfig":
        """
        Build a config from a mapping, overriding defaults.

        Raises:
            ConfigError: If data is not a mapping, has unknown keys or invalid values
        """
        if not isinstance(data, Mapping):
            raise ConfigError(f"config must be a mapping, got {type(data).__name__}")

        known = {spec.name for spec in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown config keys: {sorted(unknown)}")

        return cls(**dict(data))


def load_config(path: str) -> CoreConfig:
    """
    Load CoreConfig from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the JSON is malformed or fails validation
    """
    config_file = Path(path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_file, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Config file is not valid JSON: {e}") from e

    config = CoreConfig.from_dict(data)
    logger.info(f"Loaded config from {path}")
    return config
