"""
Unified timezone handling utilities for Schedule Bot.

This module provides consistent timezone handling across the entire application:
every timestamp the scheduling core touches is timezone-aware, and entries are
displayed in the zone configured for their schedule channel.
"""

from datetime import datetime
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import discord


# Type alias for Discord timestamp styles
TimestampStyle = Literal["t", "T", "d", "D", "f", "F", "R"]


def get_system_timezone() -> ZoneInfo:
    """
    Get the system's local timezone.

    This function provides a consistent way to get the system timezone
    across different platforms (Linux/WSL, macOS, Windows).

    Returns:
        ZoneInfo object representing the local timezone

    Examples:
        >>> tz = get_system_timezone()
        >>> isinstance(tz, ZoneInfo)
        True
    """
    try:
        # Try "localtime" first (works on Linux/WSL)
        return ZoneInfo("localtime")
    except ZoneInfoNotFoundError:
        # Fall back to getting the key from datetime for macOS/Windows
        local_tz = datetime.now().astimezone().tzinfo
        if hasattr(local_tz, "key"):
            key = getattr(local_tz, "key")  # pyright: ignore[reportAny] # timezone key from system
            if isinstance(key, str):
                return ZoneInfo(key)
        # Final fallback: use UTC
        return ZoneInfo("UTC")


def resolve_timezone(name: str | None) -> ZoneInfo:
    """
    Resolve an IANA zone name, falling back to the system timezone.

    Args:
        name: IANA zone name such as "America/New_York", or None

    Returns:
        The matching ZoneInfo

    Raises:
        ZoneInfoNotFoundError: If the name is not a known zone

    Examples:
        >>> resolve_timezone("UTC").key
        'UTC'
    """
    if not name:
        return get_system_timezone()
    return ZoneInfo(name)


def get_system_now() -> datetime:
    """
    Get the current datetime in the system's local timezone.

    Returns:
        Current datetime in the system's local timezone (timezone-aware)

    Examples:
        >>> now = get_system_now()
        >>> now.tzinfo is not None
        True
    """
    return datetime.now(get_system_timezone())


def ensure_timezone_aware(dt: datetime) -> datetime:
    """
    Ensure a datetime object is timezone-aware.

    If the datetime is naive (no timezone info), it will be assumed to be
    in the system's local timezone. If it's already timezone-aware, it
    will be returned unchanged.

    Args:
        dt: Datetime object that may be naive or timezone-aware

    Returns:
        Timezone-aware datetime object

    Examples:
        >>> naive_dt = datetime(2025, 7, 25, 14, 30, 0)
        >>> ensure_timezone_aware(naive_dt).tzinfo is not None
        True
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=get_system_timezone())
    return dt


def to_timezone(dt: datetime, tz: ZoneInfo) -> datetime:
    """
    Convert a datetime to the given zone, treating naive values as system-local.

    Args:
        dt: Datetime object to convert
        tz: Target zone

    Returns:
        The same instant expressed in ``tz``
    """
    return ensure_timezone_aware(dt).astimezone(tz)


def format_for_discord(dt: datetime, style: TimestampStyle = "F") -> str:
    """
    Format a datetime object as a Discord timestamp.

    Args:
        dt: The datetime to format
        style: Discord timestamp style (default: 'F' for full date/time)

    Returns:
        Formatted Discord timestamp string

    Examples:
        >>> dt = datetime(2025, 7, 25, 23, 59, 0)
        >>> format_for_discord(dt).endswith(":F>")
        True
    """
    return discord.utils.format_dt(ensure_timezone_aware(dt), style=style)
