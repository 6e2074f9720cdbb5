"""Pytest fixtures for Warden tests."""

import logging
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog
import yaml

from warden.core.config import BotConfig, UserConfig, WardenConfig


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset logging state before and after each test.

    This ensures test isolation for logging configuration.
    """
    from warden.cli import helpers as cli_helpers

    cli_helpers.reset_logging_state()
    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    cli_helpers.reset_logging_state()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)


@pytest.fixture
def bot() -> BotConfig:
    """A bot whose endpoints live on a fake host."""
    return BotConfig(
        name="alpha",
        start_url="https://x/add?u={id}",
        stop_url="https://x/remove?u={id}",
    )


@pytest.fixture
def user_config(bot: BotConfig) -> UserConfig:
    """User allowed three instances of the ``alpha`` bot."""
    return UserConfig(username="alice", max_instances=3, allowed_bots=[bot])


@pytest.fixture
def sample_config_dict(tmp_path: Path) -> dict:
    """Return a sample configuration dictionary using a temp store."""
    return {
        "user": {
            "username": "alice",
            "max_instances": 2,
            "allowed_bots": [
                {
                    "name": "alpha",
                    "start_url": "https://x/add?u={id}",
                    "stop_url": "https://x/remove?u={id}",
                },
            ],
        },
        "watchdog": {"safe_mode_duration_minutes": 90},
        "persistence": {"backend": "json", "path": str(tmp_path / "sessions")},
    }


@pytest.fixture
def sample_yaml_config(tmp_path: Path, sample_config_dict: dict) -> Path:
    """Create a sample YAML config file."""
    config_path = tmp_path / "warden.yaml"
    with open(config_path, "w") as f:
        yaml.dump(sample_config_dict, f)
    return config_path


@pytest.fixture
def warden_config(sample_config_dict: dict) -> WardenConfig:
    return WardenConfig.model_validate(sample_config_dict)
