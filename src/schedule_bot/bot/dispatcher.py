"""
Periodic dispatch of lifecycle triggers to due schedule entries.

The dispatcher owns the only timer in the system. Every scan it loads the
stored entries, finds those with a start, end, reminder or announcement
timestamp at or before now, and runs their triggers. Entries are processed
concurrently, but at most one trigger per entry is ever in flight.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from ..schedule.collaborators import (
    DisplayRenderer,
    EntryStore,
    MessageLocator,
    Messenger,
    TemplateResolver,
)
from ..schedule.entry import ScheduleEntry
from ..schedule.types import ChannelSettings, EntryState, TriggerContext, TriggerKind
from ..utils.core.exceptions import MalformedRepeatRuleError
from ..utils.time import as_utc, get_system_now

logger = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL = 30.0


def due_triggers(entry: ScheduleEntry, now: datetime) -> list[TriggerKind]:
    """
    Triggers of ``entry`` with a timestamp at or before ``now``.

    Announcements and reminders come before the start/end transition so they
    are sent while the entry still has its current timing.
    """
    kinds: list[TriggerKind] = []
    if any(as_utc(ts) <= as_utc(now) for ts in entry.announcements.timestamps):
        kinds.append(TriggerKind.ANNOUNCE)
    if any(
        as_utc(ts) <= as_utc(now) for ts in (*entry.start_reminders, *entry.end_reminders)
    ):
        kinds.append(TriggerKind.REMIND)
    if not entry.has_started and as_utc(entry.start_time) <= as_utc(now):
        kinds.append(TriggerKind.START)
    elif entry.has_started and as_utc(entry.end_time) <= as_utc(now):
        kinds.append(TriggerKind.END)
    return kinds


class EntryDispatcher:
    """
    Scans the entry store and runs due lifecycle triggers.

    Args:
        store: Entry store the entries are read from
        settings_for: Resolves the settings of a schedule channel
        messenger: Messaging collaborator handed to triggers
        locator: Message lookup collaborator handed to triggers
        templates: Template resolver handed to triggers
        display: Display renderer handed to triggers
        check_interval: Seconds between scans
        clock: Source of "now"
    """

    def __init__(
        self,
        store: EntryStore,
        settings_for: Callable[[int], ChannelSettings],
        messenger: Messenger,
        locator: MessageLocator,
        templates: TemplateResolver,
        display: DisplayRenderer,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        clock: Callable[[], datetime] = get_system_now,
    ) -> None:
        self.store: EntryStore = store
        self.settings_for: Callable[[int], ChannelSettings] = settings_for
        self.messenger: Messenger = messenger
        self.locator: MessageLocator = locator
        self.templates: TemplateResolver = templates
        self.display: DisplayRenderer = display
        self.check_interval: float = check_interval
        self.clock: Callable[[], datetime] = clock

        self._locks: dict[int, asyncio.Lock] = {}
        self._shutdown_event: asyncio.Event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def context_for(self, channel_id: int) -> TriggerContext:
        """Build the trigger context for an entry of ``channel_id``."""
        return TriggerContext(
            settings=self.settings_for(channel_id),
            store=self.store,
            messenger=self.messenger,
            locator=self.locator,
            templates=self.templates,
            display=self.display,
            clock=self.clock,
        )

    def lock_for(self, entry_id: int) -> asyncio.Lock:
        """The lock serialising every trigger of one entry."""
        lock = self._locks.get(entry_id)
        if lock is None:
            lock = self._locks[entry_id] = asyncio.Lock()
        return lock

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the periodic scan loop."""
        if self.is_running():
            logger.warning("Entry dispatcher already running")
            return
        logger.info(f"Starting entry dispatcher (every {self.check_interval}s)")
        self._shutdown_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="entry_dispatcher")

    async def stop(self) -> None:
        """Stop the scan loop and wait for it to finish."""
        self._shutdown_event.set()
        if self._task is None:
            return
        _ = self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Entry dispatcher stopped")

    async def _run_loop(self) -> None:
        while not self._shutdown_event.is_set():
            try:
                _ = await self.scan()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Error during entry scan: {e}")

            try:
                _ = await asyncio.wait_for(
                    self._shutdown_event.wait(), timeout=self.check_interval
                )
            except TimeoutError:
                pass

    async def scan(self) -> int:
        """
        Run one pass over the store.

        Returns:
            Number of entries that had at least one due trigger
        """
        now = self.clock()
        due_ids: list[int] = []
        for record in self.store.all_entries():
            entry = self._load(record)
            if entry is None or entry.entry_id is None:
                continue
            if due_triggers(entry, now):
                due_ids.append(entry.entry_id)

        if not due_ids:
            return 0

        logger.debug(f"Dispatching triggers for {len(due_ids)} entries")
        results = await asyncio.gather(
            *(self.process(entry_id) for entry_id in due_ids), return_exceptions=True
        )
        for entry_id, result in zip(due_ids, results):
            if isinstance(result, BaseException):
                logger.error(f"Unhandled error processing entry [{entry_id}]: {result}")
        return len(due_ids)

    async def process(self, entry_id: int) -> None:
        """
        Run every due trigger of one entry under its lock.

        The entry is reloaded inside the lock so a trigger never acts on a
        stale copy.
        """
        async with self.lock_for(entry_id):
            record = self.store.load_entry(entry_id)
            if record is None:
                _ = self._locks.pop(entry_id, None)
                return
            entry = self._load(record)
            if entry is None:
                return

            ctx = self.context_for(entry.channel_id)
            for kind in due_triggers(entry, ctx.now()):
                await self._run(entry, kind, ctx)
                if entry.state is EntryState.REMOVED:
                    break
            # A start can make the end due within the same pass
            if entry.state is EntryState.STARTED and as_utc(entry.end_time) <= as_utc(ctx.now()):
                await self._run(entry, TriggerKind.END, ctx)

        if entry.state is EntryState.REMOVED:
            _ = self._locks.pop(entry_id, None)

    async def _run(self, entry: ScheduleEntry, kind: TriggerKind, ctx: TriggerContext) -> None:
        match kind:
            case TriggerKind.START:
                await entry.start(ctx)
            case TriggerKind.END:
                await entry.end(ctx)
            case TriggerKind.REMIND:
                await entry.remind(ctx)
            case TriggerKind.ANNOUNCE:
                await entry.announce(ctx)

    def _load(self, record: dict[str, object]) -> ScheduleEntry | None:
        try:
            channel_id = int(str(record["channelId"]))
            return ScheduleEntry.from_record(record, self.settings_for(channel_id).timezone)
        except (KeyError, ValueError, TypeError, MalformedRepeatRuleError) as e:
            logger.error(f"Skipping unreadable entry record {record.get('_id')!r}: {e}")
            return None
