"""Configuration loader and validator."""

from pathlib import Path
from typing import Any

import yaml

from swisscut.models import EngineSettings, ScoringTable


class ConfigError(Exception):
    """Configuration validation error."""

    pass


def load_config(path: str) -> dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        path: Path to YAML config file

    Returns:
        Dictionary with configuration values

    Raises:
        ConfigError: If file not found or invalid YAML
    """
    config_file = Path(path)

    if not config_file.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}")

    if config is None:
        raise ConfigError("Config file is empty")

    if not isinstance(config, dict):
        raise ConfigError("Config file must contain a mapping at the top level")

    return config


def _non_negative_int(config: dict[str, Any], key: str, default: int) -> int:
    value = config.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{key} must be a non-negative integer")
    return value


def _flag(config: dict[str, Any], key: str, default: bool) -> bool:
    value = config.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false")
    return value


def validate_config(config: dict[str, Any]) -> dict[str, Any]:
    """Validate configuration values.

    Every key is optional; missing keys take the engine defaults.

    Args:
        config: Configuration dictionary

    Returns:
        Validated and normalized configuration

    Raises:
        ConfigError: If validation fails
    """
    validated = {}

    # Scoring table (win/draw/loss match points)
    scoring = config.get("scoring", {})
    if not isinstance(scoring, dict):
        raise ConfigError("scoring must be a dictionary")
    unknown = set(scoring) - {"win", "draw", "loss"}
    if unknown:
        raise ConfigError(f"Unknown scoring keys: {', '.join(sorted(unknown))}")
    validated["scoring"] = {
        "win": _non_negative_int(scoring, "win", 3),
        "draw": _non_negative_int(scoring, "draw", 1),
        "loss": _non_negative_int(scoring, "loss", 0),
    }
    if not validated["scoring"]["win"] >= validated["scoring"]["draw"] >= validated["scoring"]["loss"]:
        raise ConfigError("scoring must satisfy win >= draw >= loss")

    # OMW% floor (commonly 1/3)
    omw_floor = config.get("omw_floor", 1 / 3)
    if isinstance(omw_floor, bool) or not isinstance(omw_floor, (int, float)) or not 0 <= omw_floor <= 1:
        raise ConfigError(f"omw_floor must be a number between 0 and 1, got {omw_floor!r}")
    validated["omw_floor"] = float(omw_floor)

    validated["require_confirmation"] = _flag(config, "require_confirmation", False)
    validated["allow_self_reporting"] = _flag(config, "allow_self_reporting", True)
    validated["shuffle_first_round"] = _flag(config, "shuffle_first_round", False)

    # Random seed (optional, default 42)
    validated["random_seed"] = config.get("random_seed", 42)
    if isinstance(validated["random_seed"], bool) or not isinstance(validated["random_seed"], int):
        raise ConfigError("random_seed must be an integer")

    validated["concurrency_retries"] = _non_negative_int(config, "concurrency_retries", 0)

    validated["pairing_search_limit"] = _non_negative_int(config, "pairing_search_limit", 100_000)
    if validated["pairing_search_limit"] < 1:
        raise ConfigError("pairing_search_limit must be at least 1")

    return validated


def settings_from_config(config: dict[str, Any]) -> EngineSettings:
    """Build EngineSettings from a validated configuration dictionary."""
    return EngineSettings(
        scoring=ScoringTable(**config["scoring"]),
        omw_floor=config["omw_floor"],
        require_confirmation=config["require_confirmation"],
        allow_self_reporting=config["allow_self_reporting"],
        shuffle_first_round=config["shuffle_first_round"],
        random_seed=config["random_seed"],
        concurrency_retries=config["concurrency_retries"],
        pairing_search_limit=config["pairing_search_limit"],
    )


def load_and_validate_config(path: str) -> dict[str, Any]:
    """Load and validate configuration in one step.

    Args:
        path: Path to YAML config file

    Returns:
        Validated configuration dictionary

    Raises:
        ConfigError: If loading or validation fails
    """
    config = load_config(path)
    return validate_config(config)


def load_settings(path: str) -> EngineSettings:
    """Load a YAML config file straight into EngineSettings."""
    return settings_from_config(load_and_validate_config(path))
