"""
Global test configuration fixtures for Schedule Bot tests.

This module provides reusable pytest fixtures for configuration objects,
temporary files and the mock collaborators used by schedule entry tests.
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from schedule_bot.config.schema import ScheduleBotConfig
from schedule_bot.schedule.types import ChannelSettings

from tests.utils.test_helpers import (
    UTC,
    InMemoryEntryStore,
    create_mock_channel,
    create_mock_guild,
    create_mock_message,
    create_mock_messenger,
    create_temp_directory,
    create_test_config,
)


# Configuration


@pytest.fixture
def base_config() -> ScheduleBotConfig:
    """
    Configuration with announcement channels set for every notification.

    Returns:
        ScheduleBotConfig: Validated configuration
    """
    return create_test_config(
        announcements={
            "start_channel": "announcements",
            "end_channel": "announcements",
            "remind_channel": "reminders",
            "reminders": [60, 10],
        },
    )


@pytest.fixture
def minimal_config() -> ScheduleBotConfig:
    """Configuration with only the required Discord token."""
    return create_test_config()


@pytest.fixture
def invalid_config_dict() -> dict[str, object]:
    """
    Configuration dictionary with several validation issues.

    Returns:
        dict[str, object]: Configuration that ScheduleBotConfig rejects
    """
    return {
        "services": {"discord": {"token": "short"}},
        "scheduling": {
            "timezone": "Mars/Olympus_Mons",
            "check_interval_seconds": 1,
        },
        "announcements": {"reminders": [-5]},
    }


# Files


@pytest.fixture
def temp_data_directory() -> Generator[Path, None, None]:
    """Temporary data directory removed after the test."""
    with create_temp_directory() as temp_dir:
        yield temp_dir


# Schedule collaborators


@pytest.fixture
def now() -> datetime:
    """A fixed "now" shortly before the default test entry starts."""
    return datetime(2025, 7, 25, 18, 0, tzinfo=UTC)


@pytest.fixture
def announce_channel() -> MagicMock:
    return create_mock_channel(301, "announcements")


@pytest.fixture
def remind_channel() -> MagicMock:
    return create_mock_channel(302, "reminders")


@pytest.fixture
def guild(announce_channel: MagicMock, remind_channel: MagicMock) -> MagicMock:
    return create_mock_guild([announce_channel, remind_channel])


@pytest.fixture
def message(guild: MagicMock) -> MagicMock:
    return create_mock_message(guild=guild)  # pyright: ignore[reportReturnType]


@pytest.fixture
def messenger() -> MagicMock:
    return create_mock_messenger()


@pytest.fixture
def store() -> InMemoryEntryStore:
    return InMemoryEntryStore()


@pytest.fixture
def settings() -> ChannelSettings:
    """Channel settings that announce everything to named channels."""
    return ChannelSettings(
        timezone=UTC,
        start_channel="announcements",
        end_channel="announcements",
        remind_channel="reminders",
        reminders=(60, 10),
    )
