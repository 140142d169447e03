"""
The schedule entry aggregate and its lifecycle triggers.

A ScheduleEntry is one event posted to a schedule channel. It is either
waiting to start or has already started. The dispatcher calls ``start``,
``end``, ``remind`` and ``announce`` once the matching timestamp is due; each
trigger locates the entry's displayed message first and degrades to a no-op
when the message is gone.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from zoneinfo import ZoneInfo

from .collaborators import MessageLike
from .delivery import deliver
from .reminders import AnnouncementTable, prune_due, regenerate_reminders
from .repeat import (
    NoRepeat,
    RepeatRule,
    compute_next_occurrence,
    decode_repeat,
    describe_repeat,
    encode_repeat,
)
from .types import ChannelSettings, EntryState, TriggerContext
from ..utils.core.exceptions import MalformedRepeatRuleError
from ..utils.time import as_utc, ensure_timezone_aware, get_system_timezone

logger = logging.getLogger(__name__)

_TriggerBody = Callable[
    ["ScheduleEntry", TriggerContext, MessageLike, datetime], Awaitable[None]
]
_Trigger = Callable[["ScheduleEntry", TriggerContext], Awaitable[None]]
_DueCheck = Callable[["ScheduleEntry", datetime], bool]


def _always(_entry: "ScheduleEntry", _now: datetime) -> bool:
    return True


def _trigger(name: str, is_due: _DueCheck = _always) -> Callable[[_TriggerBody], _Trigger]:
    """
    Wrap a lifecycle step with the due check, message lookup and failure boundary.

    The wrapped step only runs when something is due and the backing message
    was found, and no exception raised inside it reaches the dispatcher.
    """

    def decorator(body: _TriggerBody) -> _Trigger:
        @functools.wraps(body)
        async def wrapper(self: "ScheduleEntry", ctx: TriggerContext) -> None:
            try:
                if self._removed:
                    logger.debug(f"Skipping {name} for removed entry [{self.entry_id}]")
                    return
                now = ctx.now()
                if not is_due(self, now):
                    logger.debug(f"Nothing due for {name} of entry [{self.entry_id}]")
                    return
                lookup = await ctx.locator.locate(self)
                if lookup.message is None:
                    logger.debug(f"Skipping {name} for entry [{self.entry_id}]: {lookup.error}")
                    return
                await body(self, ctx, lookup.message, now)
            except MalformedRepeatRuleError as e:
                logger.error(f"Entry [{self.entry_id}] has a malformed repeat rule: {e}")
            except Exception as e:
                logger.exception(f"Error during {name} of entry [{self.entry_id}]: {e}")

        return wrapper

    return decorator


class ScheduleEntry:
    """
    A scheduled event bound to a schedule channel.

    Entries are built either with :meth:`new` from user supplied parameters
    (no identity yet) or with :meth:`from_record` from a persisted record.
    """

    def __init__(
        self,
        *,
        channel_id: int,
        guild_id: int,
        title: str,
        start_time: datetime,
        end_time: datetime,
        entry_id: int | None = None,
        message_id: int | None = None,
        external_calendar_id: str | None = None,
        comments: list[str] | None = None,
        repeat: int = 0,
        start_reminders: list[datetime] | None = None,
        end_reminders: list[datetime] | None = None,
        rsvp_members: dict[str, list[str]] | None = None,
        rsvp_limits: dict[str, int] | None = None,
        rsvp_deadline: datetime | None = None,
        title_url: str | None = None,
        image_url: str | None = None,
        thumbnail_url: str | None = None,
        quiet_start: bool = False,
        quiet_end: bool = False,
        quiet_remind: bool = False,
        has_started: bool = False,
        expire: datetime | None = None,
        announcements: AnnouncementTable | None = None,
    ) -> None:
        start_time = ensure_timezone_aware(start_time)
        end_time = ensure_timezone_aware(end_time)
        if as_utc(end_time) < as_utc(start_time):
            raise ValueError(f"Entry end {end_time} is before its start {start_time}")
        # Fail at construction rather than at the first repeat
        _ = decode_repeat(repeat)

        self._entry_id: int | None = entry_id
        self.message_id: int | None = message_id
        self.channel_id: int = channel_id
        self.guild_id: int = guild_id
        self.external_calendar_id: str | None = external_calendar_id

        self.title: str = title
        self.start_time: datetime = start_time
        self.end_time: datetime = end_time
        self.comments: list[str] = list(comments or [])
        self.repeat: int = repeat
        self.start_reminders: list[datetime] = sorted(set(start_reminders or []))
        self.end_reminders: list[datetime] = sorted(set(end_reminders or []))

        self.rsvp_members: dict[str, list[str]] = dict(rsvp_members or {})
        self.rsvp_limits: dict[str, int] = dict(rsvp_limits or {})
        self.rsvp_deadline: datetime | None = rsvp_deadline

        self.title_url: str | None = title_url
        self.image_url: str | None = image_url
        self.thumbnail_url: str | None = thumbnail_url

        self.quiet_start: bool = quiet_start
        self.quiet_end: bool = quiet_end
        self.quiet_remind: bool = quiet_remind

        self.has_started: bool = has_started
        self.expire: datetime | None = expire
        self.announcements: AnnouncementTable = announcements or AnnouncementTable()
        self._removed: bool = False

    @classmethod
    def new(
        cls,
        channel_id: int,
        guild_id: int,
        title: str,
        start_time: datetime,
        end_time: datetime,
    ) -> "ScheduleEntry":
        """Create an entry that has not been stored or displayed yet."""
        return cls(
            channel_id=channel_id,
            guild_id=guild_id,
            title=title,
            start_time=start_time,
            end_time=end_time,
        )

    def __repr__(self) -> str:
        return (
            f"ScheduleEntry(entry_id={self._entry_id!r}, title={self.title!r}, "
            f"start_time={self.start_time.isoformat()}, end_time={self.end_time.isoformat()}, "
            f"repeat={self.repeat})"
        )

    # identity

    @property
    def entry_id(self) -> int | None:
        return self._entry_id

    def assign_identity(self, entry_id: int, message_id: int, channel_id: int, guild_id: int) -> None:
        """
        Bind a new entry to its store ID and displayed message.

        Raises:
            ValueError: If the entry already has an ID
        """
        if self._entry_id is not None and self._entry_id != entry_id:
            raise ValueError(f"Entry [{self._entry_id}] cannot be re-identified as [{entry_id}]")
        self._entry_id = entry_id
        self.message_id = message_id
        self.channel_id = channel_id
        self.guild_id = guild_id

    @property
    def state(self) -> EntryState:
        if self._removed:
            return EntryState.REMOVED
        return EntryState.STARTED if self.has_started else EntryState.PENDING

    # repeat rule

    @property
    def repeat_rule(self) -> RepeatRule:
        return decode_repeat(self.repeat)

    def set_repeat(self, rule: RepeatRule | int) -> None:
        """Replace the repeat rule; integers are validated by decoding."""
        self.repeat = rule if isinstance(rule, int) else encode_repeat(rule)
        _ = decode_repeat(self.repeat)

    # timing

    def reschedule(
        self, start_time: datetime, end_time: datetime, settings: ChannelSettings, now: datetime
    ) -> None:
        """Move the entry and regenerate its reminders against the new timing."""
        start_time = ensure_timezone_aware(start_time)
        end_time = ensure_timezone_aware(end_time)
        if as_utc(end_time) < as_utc(start_time):
            raise ValueError(f"Entry end {end_time} is before its start {start_time}")
        self.start_time = start_time
        self.end_time = end_time
        self.reload_reminders(settings, now)

    def reload_reminders(self, settings: ChannelSettings, now: datetime) -> None:
        """Regenerate start and end reminders from the channel's offsets."""
        self.start_reminders = regenerate_reminders(now, self.start_time, settings.reminders)
        self.end_reminders = regenerate_reminders(now, self.end_time, settings.end_reminders)

    def set_expire(self, expire: datetime | None) -> None:
        self.expire = ensure_timezone_aware(expire) if expire is not None else None

    def next_due(self) -> datetime:
        """Earliest timestamp at which some trigger of this entry is due."""
        candidates = [self.end_time if self.has_started else self.start_time]
        candidates.extend(self.start_reminders)
        candidates.extend(self.end_reminders)
        candidates.extend(self.announcements.timestamps)
        return min(candidates, key=as_utc)

    # presentation

    def set_title(self, title: str) -> None:
        if not title.strip():
            raise ValueError("Entry title must not be empty")
        self.title = title

    def add_comment(self, comment: str) -> None:
        self.comments.append(comment)

    def remove_comment(self, index: int) -> str:
        """Remove a comment by its 1-based position."""
        if not (1 <= index <= len(self.comments)):
            raise IndexError(f"Entry [{self.entry_id}] has no comment {index}")
        return self.comments.pop(index - 1)

    def set_urls(
        self,
        *,
        title_url: str | None = None,
        image_url: str | None = None,
        thumbnail_url: str | None = None,
    ) -> None:
        self.title_url = title_url
        self.image_url = image_url
        self.thumbnail_url = thumbnail_url

    def set_quiet(
        self,
        *,
        start: bool | None = None,
        end: bool | None = None,
        remind: bool | None = None,
    ) -> None:
        """Toggle notification categories; None leaves a toggle unchanged."""
        if start is not None:
            self.quiet_start = start
        if end is not None:
            self.quiet_end = end
        if remind is not None:
            self.quiet_remind = remind

    # rsvp

    def rsvp_limit(self, category: str) -> int:
        """Capacity of an RSVP category, -1 when unlimited."""
        return self.rsvp_limits.get(category, -1)

    def rsvp_members_of(self, category: str) -> list[str]:
        return list(self.rsvp_members.get(category, []))

    def is_full(self, category: str) -> bool:
        limit = self.rsvp_limit(category)
        return limit > -1 and len(self.rsvp_members.get(category, [])) >= limit

    def set_rsvp_limit(self, category: str, limit: int) -> None:
        self.rsvp_limits[category] = limit

    def set_rsvp_members(self, category: str, members: list[str]) -> None:
        self.rsvp_members[category] = list(members)

    def set_rsvp_deadline(self, deadline: datetime | None) -> None:
        self.rsvp_deadline = ensure_timezone_aware(deadline) if deadline is not None else None

    # announcement overrides

    def add_announcement(self, target: str, time_spec: str, message: str, ctx: TriggerContext) -> int:
        """
        Add an announcement override.

        Raises:
            UnresolvableTimeSpecError: If the time spec yields no timestamp
        """
        local_id = self.announcements.add(
            target,
            time_spec,
            message,
            lambda spec: ctx.templates.resolve_time_spec(spec, self),
        )
        logger.info(
            f"Added announcement override [{local_id}] for event {self.title} [{self.entry_id}]"
        )
        return local_id

    def remove_announcement(self, local_id: int) -> bool:
        return self.announcements.remove(local_id)

    # persistence

    def commit(self, ctx: TriggerContext) -> None:
        """Write the entry's current state to the store."""
        ctx.store.save_entry(self.to_record())

    async def refresh_display(self, ctx: TriggerContext) -> None:
        """Re-render the entry into its displayed message."""
        lookup = await ctx.locator.locate(self)
        if lookup.message is None:
            logger.debug(f"Not refreshing entry [{self.entry_id}]: {lookup.error}")
            return
        await self._refresh_display(ctx, lookup.message)

    # lifecycle triggers

    def _start_due(self, now: datetime) -> bool:
        return not self.has_started and as_utc(self.start_time) <= as_utc(now)

    def _end_due(self, now: datetime) -> bool:
        return as_utc(self.end_time) <= as_utc(now)

    def _reminder_due(self, now: datetime) -> bool:
        return any(
            as_utc(ts) <= as_utc(now) for ts in (*self.start_reminders, *self.end_reminders)
        )

    def _announcement_due(self, now: datetime) -> bool:
        return any(as_utc(ts) <= as_utc(now) for ts in self.announcements.timestamps)

    @_trigger("start", _start_due)
    async def start(self, ctx: TriggerContext, message: MessageLike, now: datetime) -> None:
        """Handle the entry's start time arriving."""
        # An instantaneous event never shows as started
        if self.start_time == self.end_time:
            await self._end(ctx, message, now)
            return

        if not self.quiet_start:
            _ = await self._announce_transition(
                ctx,
                message,
                kind="start",
                scheduled=self.start_time,
                template=ctx.settings.start_format,
                target=ctx.settings.start_channel,
                now=now,
            )

        self.has_started = True
        self.commit(ctx)
        await self._refresh_display(ctx, message)

    @_trigger("end", _end_due)
    async def end(self, ctx: TriggerContext, message: MessageLike, now: datetime) -> None:
        """Handle the entry's end time arriving."""
        await self._end(ctx, message, now)

    @_trigger("repeat")
    async def repeat_or_remove(
        self, ctx: TriggerContext, message: MessageLike, now: datetime
    ) -> None:
        """Renew the entry for its next occurrence, or remove it."""
        await self._repeat(ctx, message, now)

    @_trigger("remind", _reminder_due)
    async def remind(self, ctx: TriggerContext, message: MessageLike, now: datetime) -> None:
        """Send a reminder and prune every reminder that is now due."""
        target = ctx.settings.remind_channel
        if not self.quiet_remind and target is not None:
            content = ctx.templates.render(ctx.settings.remind_format, self)
            if await self._notify(ctx, message, content, target):
                logger.info(f"Sent reminder for event {self.title} [{self.entry_id}]")

        self.start_reminders = prune_due(self.start_reminders, now)
        self.end_reminders = prune_due(self.end_reminders, now)
        self.commit(ctx)

    @_trigger("announce", _announcement_due)
    async def announce(self, ctx: TriggerContext, message: MessageLike, now: datetime) -> None:
        """Send every announcement override that is due, then drop them."""
        fired: list[int] = []
        for _, batch in self.announcements.due(now):
            for local_id, override in batch:
                content = ctx.templates.render(override.message, self)
                if await self._notify(ctx, message, content, override.target):
                    logger.info(
                        f"Sent special announcement for event {self.title} [{self.entry_id}]"
                    )
                fired.append(local_id)

        for local_id in fired:
            _ = self.announcements.remove(local_id)
        self.commit(ctx)

    async def _end(self, ctx: TriggerContext, message: MessageLike, now: datetime) -> None:
        if not self.quiet_end:
            _ = await self._announce_transition(
                ctx,
                message,
                kind="end",
                scheduled=self.end_time,
                template=ctx.settings.end_format,
                target=ctx.settings.end_channel,
                now=now,
            )
        await self._repeat(ctx, message, now)

    async def _repeat(self, ctx: TriggerContext, message: MessageLike, now: datetime) -> None:
        rule = self.repeat_rule
        if isinstance(rule, NoRepeat):
            await self._destroy(ctx, message)
            return

        self.start_time, self.end_time = compute_next_occurrence(
            self.start_time, self.end_time, rule
        )
        self.has_started = False

        if self.expire is not None and as_utc(self.start_time) >= as_utc(self.expire):
            logger.info(f"Event {self.title} [{self.entry_id}] expired on {self.expire}")
            await self._destroy(ctx, message)
            return

        self.rsvp_members = {}
        self.reload_reminders(ctx.settings, now)
        self.commit(ctx)
        await self._refresh_display(ctx, message)
        logger.info(
            f"Event {self.title} [{self.entry_id}] repeats {describe_repeat(rule)}, "
            f"next start {self.start_time.isoformat()}"
        )

    async def _destroy(self, ctx: TriggerContext, message: MessageLike) -> None:
        if self._entry_id is not None:
            ctx.store.delete_entry(self._entry_id)
        self._removed = True
        await ctx.messenger.delete(message)
        logger.info(f"Removed event {self.title} [{self.entry_id}]")

    async def _announce_transition(
        self,
        ctx: TriggerContext,
        message: MessageLike,
        *,
        kind: str,
        scheduled: datetime,
        template: str,
        target: str | None,
        now: datetime,
    ) -> bool:
        # Announcements more than the tolerance late are suppressed
        if as_utc(now) >= as_utc(scheduled) + ctx.settings.late_tolerance:
            logger.warning(f"Late event {kind}: {self.title} [{self.entry_id}] {scheduled}")
            return False
        if target is None:
            return False

        content = ctx.templates.render(template, self)
        sent = await self._notify(ctx, message, content, target)
        if sent:
            verb = "Started" if kind == "start" else "Ended"
            logger.info(
                f'{verb} event "{self.title}" [{self.entry_id}] scheduled for '
                f"{scheduled.astimezone(get_system_timezone()).strftime('%H:%M')}"
            )
        return sent

    async def _notify(
        self, ctx: TriggerContext, message: MessageLike, content: str, target: str
    ) -> bool:
        try:
            return await deliver(ctx.messenger, message, content, target) > 0
        except Exception as e:
            logger.exception(
                f"Failed to deliver notification for entry [{self.entry_id}] to '{target}': {e}"
            )
            return False

    async def _refresh_display(self, ctx: TriggerContext, message: MessageLike) -> None:
        await ctx.messenger.edit(ctx.display.render(self), message)

    # records

    def to_record(self) -> dict[str, object]:
        """Serialise the entry into its persisted record."""
        record: dict[str, object] = {
            "_id": self._entry_id,
            "messageId": self.message_id,
            "channelId": self.channel_id,
            "guildId": self.guild_id,
            "googleId": self.external_calendar_id,
            "title": self.title,
            "start": self.start_time.isoformat(),
            "end": self.end_time.isoformat(),
            "comments": list(self.comments),
            "repeat": self.repeat,
            "reminders": [ts.isoformat() for ts in self.start_reminders],
            "end_reminders": [ts.isoformat() for ts in self.end_reminders],
            "rsvp_members": {k: list(v) for k, v in self.rsvp_members.items()},
            "rsvp_limits": dict(self.rsvp_limits),
            "deadline": _iso(self.rsvp_deadline),
            "url": self.title_url,
            "image": self.image_url,
            "thumbnail": self.thumbnail_url,
            "start_disabled": self.quiet_start,
            "end_disabled": self.quiet_end,
            "reminders_disabled": self.quiet_remind,
            "hasStarted": self.has_started,
            "expire": _iso(self.expire),
        }
        record.update(self.announcements.to_record())
        return record

    @classmethod
    def from_record(cls, record: dict[str, object], tz: ZoneInfo | None = None) -> "ScheduleEntry":
        """
        Rebuild an entry from a persisted record.

        Args:
            record: The stored record
            tz: Zone of the entry's schedule channel; timestamps are converted to it

        Raises:
            KeyError: If an identity or timing field is missing
            ValueError: If a field cannot be parsed
        """
        tz = tz or get_system_timezone()

        def when(key: str) -> datetime | None:
            value = record.get(key)
            return None if value is None else _parse_datetime(value, tz)

        def when_list(key: str) -> list[datetime]:
            values = record.get(key) or []
            if not isinstance(values, list):
                raise ValueError(f"Field '{key}' must be a list")
            return [_parse_datetime(v, tz) for v in values]  # pyright: ignore[reportUnknownVariableType, reportUnknownArgumentType]

        start_time = when("start")
        end_time = when("end")
        if start_time is None or end_time is None:
            raise KeyError("Entry record needs both 'start' and 'end'")

        return cls(
            entry_id=_optional_int(record.get("_id")),
            message_id=_optional_int(record.get("messageId")),
            channel_id=int(str(record["channelId"])),
            guild_id=int(str(record["guildId"])),
            external_calendar_id=_optional_str(record.get("googleId")),
            title=str(record.get("title", "")),
            start_time=start_time,
            end_time=end_time,
            comments=[str(c) for c in record.get("comments") or []],  # pyright: ignore[reportGeneralTypeIssues]
            repeat=int(str(record.get("repeat", 0))),
            start_reminders=when_list("reminders"),
            end_reminders=when_list("end_reminders"),
            rsvp_members=_members(record.get("rsvp_members")),
            rsvp_limits=_limits(record.get("rsvp_limits")),
            rsvp_deadline=when("deadline"),
            title_url=_optional_str(record.get("url")),
            image_url=_optional_str(record.get("image")),
            thumbnail_url=_optional_str(record.get("thumbnail")),
            quiet_start=bool(record.get("start_disabled", False)),
            quiet_end=bool(record.get("end_disabled", False)),
            quiet_remind=bool(record.get("reminders_disabled", False)),
            has_started=bool(record.get("hasStarted", False)),
            expire=when("expire"),
            announcements=AnnouncementTable.from_record(record),
        )

    # description

    def describe(self, clock_format: str = "24", rsvp_enabled: bool = True) -> str:
        """Multi-line summary of the entry's settings."""
        fmt = "%Y-%m-%d %H:%M [%Z]" if clock_format == "24" else "%Y-%m-%d %I:%M%p [%Z]"
        lines = [
            f'Title:  "{self.title}"',
            f"Start:  {self.start_time.strftime(fmt)}",
            f"End:    {self.end_time.strftime(fmt)}",
            f"Repeat: {describe_repeat(self.repeat_rule)} ({self.repeat})",
        ]
        if self.title_url is not None:
            lines.append(f'Url: "{self.title_url}"')

        quiet = [
            label
            for label, enabled in (
                ("start", self.quiet_start),
                ("end", self.quiet_end),
                ("reminders", self.quiet_remind),
            )
            if enabled
        ]
        if quiet:
            joined = quiet[0] if len(quiet) == 1 else ", ".join(quiet[:-1]) + " and " + quiet[-1]
            lines.append(f"Quiet: {joined} disabled")

        if self.expire is not None:
            lines.append(f'Expire: "{self.expire.date().isoformat()}"')
        if self.image_url is not None:
            lines.append(f'Image: "{self.image_url}"')
        if self.thumbnail_url is not None:
            lines.append(f'Thumbnail: "{self.thumbnail_url}"')

        if rsvp_enabled:
            if self.rsvp_deadline is not None:
                lines.append(f"Deadline: {self.rsvp_deadline.strftime(fmt)}")
            if self.rsvp_limits:
                lines.append("// Limits")
                lines.extend(f"{key} - {limit}" for key, limit in self.rsvp_limits.items())

        if self.comments:
            lines.append("// Comments")
            lines.extend(f'[{i}] "{comment}"' for i, comment in enumerate(self.comments, start=1))

        if len(self.announcements):
            lines.append("// Announcements")
            for local_id, override in self.announcements.items():
                target = override.target
                shown = f"<#{target}>" if target.isdigit() else f"#{target.removeprefix('#')}"
                lines.append(
                    f'[{local_id}] "{override.message}" at "{override.time_spec}" to "{shown}"'
                )
        return "\n".join(lines)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: object, tz: ZoneInfo) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    return ensure_timezone_aware(parsed).astimezone(tz)


def _optional_int(value: object) -> int | None:
    return None if value is None else int(str(value))


def _optional_str(value: object) -> str | None:
    return None if value is None else str(value)


def _members(value: object) -> dict[str, list[str]]:
    if not isinstance(value, dict):
        return {}
    return {str(k): [str(m) for m in v] for k, v in value.items()}  # pyright: ignore[reportUnknownVariableType]


def _limits(value: object) -> dict[str, int]:
    if not isinstance(value, dict):
        return {}
    return {str(k): int(v) for k, v in value.items()}  # pyright: ignore[reportUnknownVariableType, reportUnknownArgumentType]
