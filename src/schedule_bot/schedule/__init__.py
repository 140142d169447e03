"""
Schedule entry lifecycle for Schedule Bot.

This package holds the entry aggregate, the repeat rule codec, reminder and
announcement bookkeeping, and the default collaborators that let entries be
stored, rendered and announced.
"""

from .collaborators import (
    DisplayRenderer,
    EntryStore,
    MessageLocator,
    MessageLookup,
    Messenger,
    TemplateResolver,
)
from .delivery import deliver, resolve_targets
from .entry import ScheduleEntry
from .persistence import JsonEntryStore
from .reminders import AnnouncementOverride, AnnouncementTable, regenerate_reminders
from .repeat import (
    DayInterval,
    MinuteInterval,
    NoRepeat,
    RepeatRule,
    Weekday,
    Weekdays,
    Yearly,
    compute_next_occurrence,
    decode_repeat,
    describe_repeat,
    encode_repeat,
)
from .templating import DefaultTemplateResolver, EmbedDisplayRenderer
from .types import ChannelSettings, EntryState, TriggerContext, TriggerKind

__all__ = [
    "DisplayRenderer",
    "EntryStore",
    "MessageLocator",
    "MessageLookup",
    "Messenger",
    "TemplateResolver",
    "deliver",
    "resolve_targets",
    "ScheduleEntry",
    "JsonEntryStore",
    "AnnouncementOverride",
    "AnnouncementTable",
    "regenerate_reminders",
    "DayInterval",
    "MinuteInterval",
    "NoRepeat",
    "RepeatRule",
    "Weekday",
    "Weekdays",
    "Yearly",
    "compute_next_occurrence",
    "decode_repeat",
    "describe_repeat",
    "encode_repeat",
    "DefaultTemplateResolver",
    "EmbedDisplayRenderer",
    "ChannelSettings",
    "EntryState",
    "TriggerContext",
    "TriggerKind",
]
