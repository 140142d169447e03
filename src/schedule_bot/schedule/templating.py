"""
Default message templating and entry display for Schedule Bot.

Message templates use ``str.format`` placeholders such as ``{title}`` or
``{relative_start}``; unknown placeholders are left untouched. Announcement
time specs are either relative to the entry (``START-15m``, ``END+1h30m``)
or absolute (``2025-07-25 19:00`` or any ISO-8601 timestamp).
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, override

import discord

from .repeat import describe_repeat
from ..utils.core.exceptions import MalformedRepeatRuleError
from ..utils.time import format_for_discord

if TYPE_CHECKING:
    from .entry import ScheduleEntry

logger = logging.getLogger(__name__)

_RELATIVE_SPEC = re.compile(
    r"^(?P<anchor>start|end)\s*(?:(?P<sign>[+-])\s*(?P<offset>(?:\d+\s*[dhm]\s*)+))?$",
    re.IGNORECASE,
)
_OFFSET_PART = re.compile(r"(\d+)\s*([dhm])", re.IGNORECASE)
_ABSOLUTE_FORMATS = ("%Y-%m-%d %H:%M", "%Y/%m/%d %H:%M", "%m/%d/%Y %H:%M")

EMBED_COLOR = 0x5865F2


class _KeepMissing(dict[str, str]):
    @override
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def parse_offset(text: str) -> timedelta:
    """
    Parse an offset such as ``1h30m`` or ``2d``.

    Examples:
        >>> parse_offset("1h30m")
        datetime.timedelta(seconds=5400)
    """
    total = timedelta()
    for amount, unit in _OFFSET_PART.findall(text):
        match unit.lower():
            case "d":
                total += timedelta(days=int(amount))
            case "h":
                total += timedelta(hours=int(amount))
            case _:
                total += timedelta(minutes=int(amount))
    return total


class DefaultTemplateResolver:
    """Template resolver used when no richer formatter is configured."""

    def placeholders(self, entry: "ScheduleEntry") -> dict[str, str]:
        """Values available to message templates."""
        try:
            repeat = describe_repeat(entry.repeat_rule)
        except MalformedRepeatRuleError:
            repeat = str(entry.repeat)
        return {
            "id": str(entry.entry_id) if entry.entry_id is not None else "",
            "title": entry.title,
            "url": entry.title_url or "",
            "comments": "\n".join(entry.comments),
            "start": format_for_discord(entry.start_time, "f"),
            "end": format_for_discord(entry.end_time, "f"),
            "relative_start": format_for_discord(entry.start_time, "R"),
            "relative_end": format_for_discord(entry.end_time, "R"),
            "repeat": repeat,
            "channel": f"<#{entry.channel_id}>",
            "everyone": "@everyone",
            "here": "@here",
        }

    def render(self, template: str, entry: "ScheduleEntry") -> str:
        return template.format_map(_KeepMissing(self.placeholders(entry)))

    def resolve_time_spec(self, spec: str, entry: "ScheduleEntry") -> datetime | None:
        """
        Resolve an announcement time spec against an entry.

        Returns:
            The resolved timestamp, or None when the spec is not understood
        """
        spec = spec.strip()
        match = _RELATIVE_SPEC.match(spec)
        if match:
            anchor = entry.start_time if match["anchor"].lower() == "start" else entry.end_time
            if match["offset"] is None:
                return anchor
            offset = parse_offset(match["offset"])
            return anchor - offset if match["sign"] == "-" else anchor + offset

        tz = entry.start_time.tzinfo
        for fmt in _ABSOLUTE_FORMATS:
            try:
                return datetime.strptime(spec, fmt).replace(tzinfo=tz)
            except ValueError:
                continue
        try:
            parsed = datetime.fromisoformat(spec)
        except ValueError:
            logger.debug(f"Unrecognised announcement time spec: {spec!r}")
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=tz)


class EmbedDisplayRenderer:
    """Renders an entry into the embed shown in its schedule channel."""

    def render(self, entry: "ScheduleEntry") -> discord.Embed:
        embed = discord.Embed(
            title=entry.title,
            url=entry.title_url,
            description="\n".join(entry.comments) or None,
            color=EMBED_COLOR,
            timestamp=entry.start_time,
        )

        if entry.has_started:
            embed.add_field(name="Started", value=format_for_discord(entry.start_time, "f"))
            embed.add_field(name="Ends", value=format_for_discord(entry.end_time, "R"))
        else:
            embed.add_field(name="Starts", value=format_for_discord(entry.start_time, "f"))
            embed.add_field(name="Ends", value=format_for_discord(entry.end_time, "f"))
            embed.add_field(name="Begins", value=format_for_discord(entry.start_time, "R"))

        try:
            repeat = describe_repeat(entry.repeat_rule)
        except MalformedRepeatRuleError:
            repeat = f"invalid ({entry.repeat})"
        embed.add_field(name="Repeats", value=repeat, inline=False)

        for category, members in entry.rsvp_members.items():
            limit = entry.rsvp_limit(category)
            header = f"{category} ({len(members)}/{limit})" if limit > -1 else f"{category} ({len(members)})"
            embed.add_field(name=header, value=", ".join(members) or "-", inline=True)

        if entry.image_url:
            embed.set_image(url=entry.image_url)
        if entry.thumbnail_url:
            embed.set_thumbnail(url=entry.thumbnail_url)
        embed.set_footer(text=f"ID: {entry.entry_id}" if entry.entry_id is not None else "ID: pending")
        return embed
