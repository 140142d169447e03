"""
discord.py implementations of the messaging collaborators.

The scheduling core talks to Discord only through these two classes: the
messenger sends, edits and deletes messages, and the locator finds the
message an entry is displayed in.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, cast

import discord

from ...schedule.collaborators import ChannelLike, MessageLike, MessageLookup

if TYPE_CHECKING:
    from ...schedule.entry import ScheduleEntry

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_TIMEOUT = 10.0


class DiscordMessenger:
    """
    Sends, edits and deletes messages through discord.py.

    Failures are logged and not retried; the lifecycle of an entry never
    depends on a notification reaching Discord.
    """

    async def send(self, content: str | discord.Embed, channel: ChannelLike) -> None:
        target = cast(discord.abc.Messageable, channel)
        try:
            if isinstance(content, discord.Embed):
                _ = await target.send(embed=content)
            else:
                _ = await target.send(content)
        except discord.Forbidden:
            logger.warning(f"Cannot send to channel {channel.id} - insufficient permissions")
        except discord.HTTPException as e:
            logger.error(f"HTTP error sending to channel {channel.id}: {e}")

    async def edit(self, content: str | discord.Embed, message: MessageLike) -> None:
        target = cast(discord.Message, message)
        try:
            if isinstance(content, discord.Embed):
                _ = await target.edit(content=None, embed=content)
            else:
                _ = await target.edit(content=content, embed=None)
        except discord.NotFound:
            logger.debug(f"Message {message.id} was deleted before it could be edited")
        except discord.Forbidden:
            logger.warning(f"Cannot edit message {message.id} - insufficient permissions")
        except discord.HTTPException as e:
            logger.error(f"HTTP error editing message {message.id}: {e}")

    async def delete(self, message: MessageLike) -> None:
        target = cast(discord.Message, message)
        try:
            await target.delete()
        except discord.NotFound:
            # Already gone
            pass
        except discord.Forbidden:
            logger.warning(f"Cannot delete message {message.id} - insufficient permissions")
        except discord.HTTPException as e:
            logger.error(f"HTTP error deleting message {message.id}: {e}")


class DiscordMessageLocator:
    """
    Finds an entry's displayed message within a bounded time.

    A missing channel or message, missing permissions, an HTTP error or a
    timeout all resolve to a miss rather than an exception.
    """

    def __init__(self, client: discord.Client, timeout: float = DEFAULT_LOOKUP_TIMEOUT) -> None:
        self.client: discord.Client = client
        self.timeout: float = timeout

    async def locate(self, entry: "ScheduleEntry") -> MessageLookup:
        if entry.message_id is None:
            return MessageLookup.missing(entry.entry_id, "entry has no message")

        try:
            message = await asyncio.wait_for(
                self._fetch(entry.channel_id, entry.message_id), timeout=self.timeout
            )
        except TimeoutError:
            logger.warning(
                f"Timed out after {self.timeout}s fetching message {entry.message_id} "
                f"for entry [{entry.entry_id}]"
            )
            return MessageLookup.missing(entry.entry_id, "lookup timed out")
        except discord.NotFound:
            return MessageLookup.missing(entry.entry_id, "message not found")
        except discord.Forbidden:
            logger.warning(f"No access to the message of entry [{entry.entry_id}]")
            return MessageLookup.missing(entry.entry_id, "missing permissions")
        except discord.HTTPException as e:
            logger.error(f"HTTP error fetching the message of entry [{entry.entry_id}]: {e}")
            return MessageLookup.missing(entry.entry_id, f"HTTP error {e.status}")

        if message is None:
            return MessageLookup.missing(entry.entry_id, "channel is not a text channel")
        return MessageLookup.hit(message)

    async def _fetch(self, channel_id: int, message_id: int) -> discord.Message | None:
        channel = self.client.get_channel(channel_id)
        if channel is None:
            channel = await self.client.fetch_channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            return None
        return await channel.fetch_message(message_id)
