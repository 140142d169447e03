"""
Settings and context passed explicitly into every lifecycle trigger.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from zoneinfo import ZoneInfo

from .collaborators import (
    DisplayRenderer,
    EntryStore,
    MessageLocator,
    Messenger,
    TemplateResolver,
)
from ..utils.time import get_system_now

DEFAULT_LATE_TOLERANCE = timedelta(minutes=15)


class EntryState(Enum):
    """Lifecycle state of an entry."""

    PENDING = "pending"
    STARTED = "started"
    REMOVED = "removed"


class TriggerKind(Enum):
    """The lifecycle triggers the dispatcher can invoke."""

    START = "start"
    END = "end"
    REMIND = "remind"
    ANNOUNCE = "announce"


@dataclass(frozen=True)
class ChannelSettings:
    """Announcement settings resolved for one schedule channel."""

    timezone: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))
    clock_format: str = "24"
    start_format: str = "Event **{title}** has begun!"
    end_format: str = "Event **{title}** has ended."
    remind_format: str = "Event **{title}** begins {relative_start}."
    start_channel: str | None = None
    end_channel: str | None = None
    remind_channel: str | None = None
    reminders: tuple[int, ...] = (10,)
    end_reminders: tuple[int, ...] = ()
    late_tolerance: timedelta = DEFAULT_LATE_TOLERANCE

    def __post_init__(self) -> None:
        if any(offset < 0 for offset in (*self.reminders, *self.end_reminders)):
            raise ValueError("Reminder offsets must be non-negative")
        if self.late_tolerance < timedelta(0):
            raise ValueError("late_tolerance must be non-negative")


@dataclass
class TriggerContext:
    """Everything a lifecycle trigger needs besides the entry itself."""

    settings: ChannelSettings
    store: EntryStore
    messenger: Messenger
    locator: MessageLocator
    templates: TemplateResolver
    display: DisplayRenderer
    clock: Callable[[], datetime] = get_system_now

    def now(self) -> datetime:
        return self.clock()
