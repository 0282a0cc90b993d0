"""
Simulator configuration.

Parses and validates YAML configuration files describing the simulated
machine and the feature toggles the simulator starts with.
"""

from dataclasses import asdict, dataclass
from pathlib import Path

import yaml

from .errors import ConfigError
from .machine import DEFAULT_MEMORY_WORDS

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

KNOWN_FIELDS = {"name", "description", "memory_words", "forwarding", "stalls", "tick_interval_ms", "log_level"}


@dataclass(frozen=True)
class SimulatorConfig:
    """
    Validated simulator configuration.

    Attributes:
        name: Configuration name
        description: Free text
        memory_words: Size of data memory in words
        forwarding: Initial forwarding toggle
        stalls: Initial hazard detection / stall toggle
        tick_interval_ms: Cadence advertised to external clock drivers
        log_level: Logging level for the command line driver
    """

    name: str = "classic-5stage"
    description: str = ""
    memory_words: int = DEFAULT_MEMORY_WORDS
    forwarding: bool = True
    stalls: bool = True
    tick_interval_ms: int = 500
    log_level: str = "INFO"

    def to_dict(self) -> dict:
        return asdict(self)


def default_config() -> SimulatorConfig:
    return SimulatorConfig()


def parse_config(yaml_content: str) -> SimulatorConfig:
    """
    Parse and validate a YAML configuration.

    Args:
        yaml_content: Raw YAML string content

    Returns:
        Validated SimulatorConfig

    Raises:
        ConfigError: If the configuration is invalid
    """
    try:
        raw = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be a YAML mapping/dictionary")

    _validate_config(raw)
    return SimulatorConfig(**raw)


def load_config(path) -> SimulatorConfig:
    """
    Load a configuration file.

    Raises:
        ConfigError: If the file is missing or invalid
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")
    return parse_config(path.read_text())


def _validate_config(raw: dict) -> None:
    """Validate configuration structure and contents."""
    if "name" not in raw:
        raise ConfigError("Missing required field 'name'")
    if not isinstance(raw["name"], str) or not raw["name"].strip():
        raise ConfigError("'name' must be a non-empty string")

    unknown = set(raw) - KNOWN_FIELDS
    if unknown:
        raise ConfigError(f"Unknown field(s): {', '.join(sorted(unknown))}")

    if "description" in raw and not isinstance(raw["description"], str):
        raise ConfigError("'description' must be a string")

    for key in ("memory_words", "tick_interval_ms"):
        if key in raw:
            _require_positive_int(raw[key], key)

    for key in ("forwarding", "stalls"):
        if key in raw and not isinstance(raw[key], bool):
            raise ConfigError(f"'{key}' must be true or false")

    if "log_level" in raw:
        level = raw["log_level"]
        if not isinstance(level, str) or level.upper() not in VALID_LOG_LEVELS:
            raise ConfigError(f"'log_level' must be one of {', '.join(sorted(VALID_LOG_LEVELS))}")
        raw["log_level"] = level.upper()


def _require_positive_int(value, field_path: str) -> None:
    """Validate that a value is a positive integer."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"'{field_path}' must be a positive integer")
