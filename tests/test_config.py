"""Tests for YAML configuration loading."""

from pathlib import Path

import pytest

from swisscut.config_loader import (
    ConfigError,
    load_and_validate_config,
    load_config,
    load_settings,
    validate_config,
)
from swisscut.models import EngineSettings, ScoringTable

SAMPLE_CONFIG = Path(__file__).parent.parent / "config" / "sample_config.yaml"


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_sample_config_is_valid():
    settings = load_settings(str(SAMPLE_CONFIG))

    assert settings.scoring == ScoringTable(win=3, draw=1, loss=0)
    assert settings.shuffle_first_round is True
    assert settings.random_seed == 42


def test_defaults_for_missing_keys(tmp_path):
    settings = load_settings(write_config(tmp_path, "random_seed: 7\n"))

    assert settings == EngineSettings(random_seed=7)


def test_custom_values(tmp_path):
    path = write_config(
        tmp_path,
        "scoring:\n  win: 2\n  draw: 1\n  loss: 0\n"
        "omw_floor: 0.25\nrequire_confirmation: true\nconcurrency_retries: 3\n",
    )
    cfg = load_and_validate_config(path)

    assert cfg["scoring"] == {"win": 2, "draw": 1, "loss": 0}
    assert cfg["omw_floor"] == 0.25
    assert cfg["require_confirmation"] is True
    assert cfg["concurrency_retries"] == 3


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "nope.yaml"))


def test_empty_file(tmp_path):
    with pytest.raises(ConfigError, match="empty"):
        load_config(write_config(tmp_path, ""))


def test_invalid_yaml(tmp_path):
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(write_config(tmp_path, "scoring: [win: 3\n"))


def test_top_level_must_be_mapping(tmp_path):
    with pytest.raises(ConfigError, match="mapping"):
        load_config(write_config(tmp_path, "- 1\n- 2\n"))


@pytest.mark.parametrize(
    "config,message",
    [
        ({"scoring": [3, 1, 0]}, "dictionary"),
        ({"scoring": {"win": 3, "bonus": 1}}, "Unknown scoring keys"),
        ({"scoring": {"win": -1}}, "non-negative"),
        ({"scoring": {"win": 1, "draw": 2}}, "win >= draw >= loss"),
        ({"omw_floor": 1.5}, "omw_floor"),
        ({"omw_floor": True}, "omw_floor"),
        ({"require_confirmation": "yes"}, "true or false"),
        ({"random_seed": "abc"}, "random_seed"),
        ({"concurrency_retries": -1}, "concurrency_retries"),
        ({"pairing_search_limit": 0}, "at least 1"),
    ],
)
def test_validation_errors(config, message):
    with pytest.raises(ConfigError, match=message):
        validate_config(config)
