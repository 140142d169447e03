"""Configuration manager for Schedule Bot.

This module loads YAML configuration files with Pydantic model validation,
writes the documented sample file, and resolves the effective announcement
settings of a schedule channel.
"""

import logging
import threading
from datetime import timedelta
from pathlib import Path

import yaml

from ..schedule.types import ChannelSettings
from ..utils.time import resolve_timezone
from .schema import (
    ChannelOverrideConfig,
    ScheduleBotConfig,
)


logger = logging.getLogger(__name__)


class ConfigManager:
    """
    Configuration manager for handling YAML config files with Pydantic validation.

    Holds the configuration the running bot uses and derives per-channel
    settings from it.
    """

    def __init__(self) -> None:
        """Initialize the configuration manager."""
        self._current_config: ScheduleBotConfig | None = None
        self._config_lock: threading.RLock = threading.RLock()

    @staticmethod
    def load_config(config_path: Path) -> ScheduleBotConfig:
        """
        Load and validate configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            ScheduleBotConfig: Validated configuration object

        Raises:
            FileNotFoundError: If the config file doesn't exist
            yaml.YAMLError: If the YAML syntax is invalid
            ValueError: If the file does not hold a mapping
            ValidationError: If the configuration fails Pydantic validation
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with config_path.open("r", encoding="utf-8") as f:
                raw_config_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if raw_config_data is None:
            config_data: dict[str, object] = {}
        elif isinstance(raw_config_data, dict):
            config_data = raw_config_data  # pyright: ignore[reportUnknownVariableType]
        else:
            raise ValueError(
                f"Configuration file must contain a YAML dictionary, got {type(raw_config_data).__name__}"
            )

        return ScheduleBotConfig(**ConfigManager._parse_config_data(config_data))  # pyright: ignore[reportArgumentType]

    @staticmethod
    def _parse_config_data(config_data: dict[str, object]) -> dict[str, object]:
        """
        Normalise values YAML parses into unexpected types.

        Channel identifiers written as bare numbers (``start_channel: 1234``)
        come back as ints and are turned into strings.

        Args:
            config_data: Raw configuration data from YAML

        Returns:
            Parsed configuration data
        """
        parsed_data = config_data.copy()

        for key, value in config_data.items():
            match key, value:
                case "announcements", dict():
                    parsed_data[key] = ConfigManager._stringify_channels(value)  # pyright: ignore[reportUnknownArgumentType]
                case "channels", dict():
                    parsed_data[key] = {
                        channel_id: ConfigManager._stringify_channels(override)  # pyright: ignore[reportUnknownArgumentType]
                        if isinstance(override, dict)
                        else override
                        for channel_id, override in value.items()  # pyright: ignore[reportUnknownVariableType]
                    }
                case _:
                    parsed_data[key] = value

        return parsed_data

    @staticmethod
    def _stringify_channels(section: dict[str, object]) -> dict[str, object]:
        parsed = section.copy()
        for field in ("start_channel", "end_channel", "remind_channel"):
            match parsed.get(field):
                case int() as channel_id if not isinstance(channel_id, bool):
                    parsed[field] = str(channel_id)
                case _:
                    pass
        return parsed

    @staticmethod
    def create_sample_config(sample_path: Path) -> None:
        """
        Create a sample configuration file with all options and documentation.

        Args:
            sample_path: Path where to create the sample configuration file
        """
        _ = sample_path.parent.mkdir(parents=True, exist_ok=True)
        _ = sample_path.write_text(ConfigManager._generate_sample_content(), encoding="utf-8")
        logger.info(f"Wrote sample configuration to {sample_path}")

    @staticmethod
    def _generate_sample_content() -> str:
        """Sample configuration file content with documentation."""
        return """# Schedule Bot Configuration File
# Copy this file to config.yml and modify the values as needed.

# ============================================================================
# Required Configuration (Set These First)
# ============================================================================

services:
  discord:
    # Discord bot token - Get this from Discord Developer Portal
    token: "your_discord_bot_token_here"

# ============================================================================
# Scheduling
# ============================================================================

scheduling:
  # IANA timezone used for entries of channels without an override
  timezone: "UTC"
  # Clock format used when describing entries ("12" or "24")
  clock_format: "24"
  # Seconds between scans for due entries (5-600)
  check_interval_seconds: 30
  # Start/end announcements more than this many minutes late are not sent
  late_tolerance_minutes: 15
  # Upper bound in seconds on fetching an entry's message from Discord
  message_lookup_timeout_seconds: 10.0

# ============================================================================
# Announcements (defaults for every schedule channel)
# ============================================================================

announcements:
  # Placeholders: {title} {start} {end} {relative_start} {relative_end}
  #               {repeat} {url} {comments} {channel} {id} {everyone} {here}
  start_format: "Event **{title}** has begun!"
  end_format: "Event **{title}** has ended."
  remind_format: "Event **{title}** begins {relative_start}."
  # Channel ID or channel name, or null to disable
  start_channel: null
  end_channel: null
  remind_channel: null
  # Minutes before the start / end at which reminders are sent
  reminders: [10]
  end_reminders: []

# ============================================================================
# Per-channel overrides, keyed by schedule channel ID
# ============================================================================

channels: {}
#  123456789012345678:
#    timezone: "America/New_York"
#    start_channel: "announcements"
#    reminders: [60, 10]

# ============================================================================
# Storage
# ============================================================================

storage:
  # File name of the entry store inside the data folder
  entries_file: "entries.json"
"""

    # Channel settings

    def settings_for_channel(self, channel_id: int) -> ChannelSettings:
        """
        Resolve the effective announcement settings of a schedule channel.

        Args:
            channel_id: ID of the schedule channel

        Returns:
            ChannelSettings with per-channel overrides applied
        """
        config = self.get_current_config()
        defaults = config.announcements
        override = config.channels.get(channel_id) or ChannelOverrideConfig()

        def pick_channel(default: str | None, value: str | None) -> str | None:
            # An empty string disables the announcement
            chosen = default if value is None else value
            return chosen or None

        return ChannelSettings(
            timezone=resolve_timezone(override.timezone or config.scheduling.timezone),
            clock_format=config.scheduling.clock_format,
            start_format=override.start_format or defaults.start_format,
            end_format=override.end_format or defaults.end_format,
            remind_format=override.remind_format or defaults.remind_format,
            start_channel=pick_channel(defaults.start_channel, override.start_channel),
            end_channel=pick_channel(defaults.end_channel, override.end_channel),
            remind_channel=pick_channel(defaults.remind_channel, override.remind_channel),
            reminders=tuple(
                defaults.reminders if override.reminders is None else override.reminders
            ),
            end_reminders=tuple(
                defaults.end_reminders
                if override.end_reminders is None
                else override.end_reminders
            ),
            late_tolerance=timedelta(minutes=config.scheduling.late_tolerance_minutes),
        )

    # Current configuration

    def set_current_config(self, config: ScheduleBotConfig) -> None:
        """
        Set the current configuration.

        Args:
            config: Configuration object to set as current
        """
        with self._config_lock:
            self._current_config = config

    def get_current_config(self) -> ScheduleBotConfig:
        """
        Get the current configuration.

        Raises:
            RuntimeError: If no configuration has been set
        """
        with self._config_lock:
            if self._current_config is None:
                raise RuntimeError(
                    "No configuration has been set. Call set_current_config() first."
                )
            return self._current_config

