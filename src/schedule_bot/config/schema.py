"""Configuration schema for Schedule Bot using nested Pydantic models."""

from typing import Annotated, ClassVar, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _validate_zone(v: str | None) -> str | None:
    if v is None or v == "":
        return v
    try:
        _ = ZoneInfo(v)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {v}") from e
    return v


def _validate_offsets(v: list[int] | None) -> list[int] | None:
    if v is None:
        return v
    return sorted(set(v), reverse=True)


class DiscordConfig(BaseModel):
    """Discord service configuration."""

    token: str = Field(
        ...,
        description="Discord bot token",
        min_length=1,
    )

    @field_validator("token")
    @classmethod
    def validate_discord_token(cls, v: str) -> str:
        """Validate Discord token format."""
        if len(v) < 10:
            raise ValueError("Discord token appears to be too short")
        return v


class ServicesConfig(BaseModel):
    """External services configuration."""

    discord: DiscordConfig


class SchedulingConfig(BaseModel):
    """How and how often entries are checked."""

    timezone: str = Field(
        default="UTC",
        description="IANA timezone used for entries of channels without an override",
    )
    clock_format: Literal["12", "24"] = Field(
        default="24",
        description="Clock format used when describing entries",
    )
    check_interval_seconds: Annotated[int, Field(ge=5, le=600)] = Field(
        default=30,
        description="Seconds between scans for due entries",
    )
    late_tolerance_minutes: Annotated[int, Field(ge=0, le=1440)] = Field(
        default=15,
        description="Start/end announcements more than this many minutes late are not sent",
    )
    message_lookup_timeout_seconds: Annotated[float, Field(gt=0, le=120)] = Field(
        default=10.0,
        description="Upper bound on fetching an entry's message from Discord",
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate the timezone name against the zone database."""
        _ = _validate_zone(v)
        return v


class AnnouncementsConfig(BaseModel):
    """Default announcement settings for every schedule channel."""

    start_format: str = Field(
        default="Event **{title}** has begun!",
        description="Message sent when an entry starts",
    )
    end_format: str = Field(
        default="Event **{title}** has ended.",
        description="Message sent when an entry ends",
    )
    remind_format: str = Field(
        default="Event **{title}** begins {relative_start}.",
        description="Message sent for reminders",
    )
    start_channel: str | None = Field(
        default=None,
        description="Channel ID or name for start announcements, or null to disable",
    )
    end_channel: str | None = Field(
        default=None,
        description="Channel ID or name for end announcements, or null to disable",
    )
    remind_channel: str | None = Field(
        default=None,
        description="Channel ID or name for reminders, or null to disable",
    )
    reminders: list[Annotated[int, Field(ge=0, le=10080)]] = Field(
        default_factory=lambda: [10],
        description="Minutes before the start at which reminders are sent",
    )
    end_reminders: list[Annotated[int, Field(ge=0, le=10080)]] = Field(
        default_factory=list,
        description="Minutes before the end at which reminders are sent",
    )

    @field_validator("reminders", "end_reminders")
    @classmethod
    def normalize_offsets(cls, v: list[int]) -> list[int]:
        """Drop duplicate offsets."""
        return _validate_offsets(v) or []


class ChannelOverrideConfig(BaseModel):
    """
    Per-schedule-channel overrides.

    Unset fields inherit from ``announcements`` and ``scheduling``; an empty
    channel string disables that announcement for the channel.
    """

    timezone: str | None = None
    start_format: str | None = None
    end_format: str | None = None
    remind_format: str | None = None
    start_channel: str | None = None
    end_channel: str | None = None
    remind_channel: str | None = None
    reminders: list[Annotated[int, Field(ge=0, le=10080)]] | None = None
    end_reminders: list[Annotated[int, Field(ge=0, le=10080)]] | None = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        """Validate the timezone name against the zone database."""
        return _validate_zone(v)

    @field_validator("reminders", "end_reminders")
    @classmethod
    def normalize_offsets(cls, v: list[int] | None) -> list[int] | None:
        """Drop duplicate offsets."""
        return _validate_offsets(v)


class StorageConfig(BaseModel):
    """Entry storage configuration."""

    entries_file: str = Field(
        default="entries.json",
        description="File name of the entry store inside the data folder",
        min_length=1,
        pattern=r"^[^/\\]+$",
    )


class ScheduleBotConfig(BaseModel):
    """
    Configuration model for Schedule Bot with nested structure.

    This model defines all configuration options with validation,
    type hints, and default values using a nested approach.
    """

    services: ServicesConfig
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    announcements: AnnouncementsConfig = Field(default_factory=AnnouncementsConfig)
    channels: dict[int, ChannelOverrideConfig] = Field(default_factory=dict)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    model_config: ClassVar[ConfigDict] = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="forbid",
        frozen=False,
    )
