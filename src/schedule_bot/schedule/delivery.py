"""
Announcement delivery resolution.

A target identifier is either a channel snowflake or a human readable
channel name. The snowflake is tried first within the entry's guild; when
that yields nothing, or only a channel that cannot hold messages, every
text channel whose name matches (ignoring case) receives the message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .collaborators import ChannelLike, GuildLike, MessageLike, Messenger

if TYPE_CHECKING:
    import discord

logger = logging.getLogger(__name__)


def resolve_targets(guild: GuildLike, identifier: str) -> list[ChannelLike]:
    """
    Resolve a channel identifier to the channels that should be messaged.

    Args:
        guild: Guild the entry belongs to
        identifier: Channel snowflake or channel name

    Returns:
        Matching channels, possibly empty
    """
    identifier = identifier.strip()
    if identifier.isdigit():
        try:
            channel = guild.get_channel(int(identifier))
        except Exception as e:
            logger.debug(f"Channel lookup by ID {identifier} failed: {e}")
            channel = None
        if channel is not None and callable(getattr(channel, "send", None)):
            return [channel]  # pyright: ignore[reportReturnType]
        if channel is not None:
            logger.debug(f"Channel {identifier} cannot receive messages, matching by name")

    name = identifier.removeprefix("#").casefold()
    return [chan for chan in guild.text_channels if chan.name.casefold() == name]


async def deliver(
    messenger: Messenger,
    message: MessageLike,
    content: "str | discord.Embed",
    identifier: str,
) -> int:
    """
    Send ``content`` to every channel ``identifier`` resolves to.

    Args:
        messenger: Messaging collaborator
        message: The entry's backing message, used to find its guild
        content: What to send
        identifier: Channel snowflake or name

    Returns:
        Number of channels the message was handed to
    """
    guild = message.guild
    if guild is None:
        logger.warning(f"Message {message.id} has no guild, cannot deliver to '{identifier}'")
        return 0

    channels = resolve_targets(guild, identifier)
    if not channels:
        logger.warning(f"No channel matches announcement target '{identifier}'")
        return 0

    for channel in channels:
        await messenger.send(content, channel)
    return len(channels)
