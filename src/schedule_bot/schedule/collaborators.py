"""
Interfaces of the collaborators the scheduling core talks to.

The core never imports the Discord adapter or the JSON store directly; it
only depends on these protocols, which keeps it testable with mocks.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from ..utils.core.exceptions import BackingMessageMissingError

if TYPE_CHECKING:
    import discord

    from .entry import ScheduleEntry


class ChannelLike(Protocol):
    """The parts of a text channel the core uses."""

    id: int
    name: str


class GuildLike(Protocol):
    """The parts of a guild used to resolve announcement targets."""

    def get_channel(self, channel_id: int, /) -> object | None: ...

    @property
    def text_channels(self) -> Sequence[ChannelLike]: ...


class MessageLike(Protocol):
    """The parts of a displayed entry message the core uses."""

    id: int

    @property
    def guild(self) -> GuildLike | None: ...


@dataclass(frozen=True)
class MessageLookup:
    """Outcome of locating an entry's backing message."""

    message: MessageLike | None = None
    error: BackingMessageMissingError | None = None

    @property
    def found(self) -> bool:
        return self.message is not None

    @classmethod
    def hit(cls, message: MessageLike) -> "MessageLookup":
        return cls(message=message)

    @classmethod
    def missing(cls, entry_id: int | None, reason: str = "message not found") -> "MessageLookup":
        return cls(error=BackingMessageMissingError(entry_id, reason))


class EntryStore(Protocol):
    """Persistent storage of entry records."""

    def load_entry(self, entry_id: int) -> dict[str, object] | None: ...

    def save_entry(self, record: dict[str, object]) -> None: ...

    def delete_entry(self, entry_id: int) -> None: ...

    def all_entries(self) -> list[dict[str, object]]: ...

    def next_entry_id(self) -> int: ...


class Messenger(Protocol):
    """Sends, edits and deletes Discord messages."""

    async def send(self, content: "str | discord.Embed", channel: ChannelLike) -> None: ...

    async def edit(self, content: "str | discord.Embed", message: MessageLike) -> None: ...

    async def delete(self, message: MessageLike) -> None: ...


class MessageLocator(Protocol):
    """Finds the message an entry is displayed in, within a bounded time."""

    async def locate(self, entry: "ScheduleEntry") -> MessageLookup: ...


class TemplateResolver(Protocol):
    """Fills message templates and resolves announcement time specs."""

    def render(self, template: str, entry: "ScheduleEntry") -> str: ...

    def resolve_time_spec(self, spec: str, entry: "ScheduleEntry") -> datetime | None: ...


class DisplayRenderer(Protocol):
    """Produces the displayed content of an entry's message."""

    def render(self, entry: "ScheduleEntry") -> "str | discord.Embed": ...
