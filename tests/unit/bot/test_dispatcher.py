"""Tests for the entry dispatcher."""

import asyncio
import logging
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from schedule_bot.bot.dispatcher import EntryDispatcher, due_triggers
from schedule_bot.schedule.collaborators import MessageLookup
from schedule_bot.schedule.templating import DefaultTemplateResolver
from schedule_bot.schedule.types import ChannelSettings, TriggerKind

from tests.utils.test_helpers import UTC, InMemoryEntryStore, create_test_entry

START = datetime(2025, 7, 25, 19, 0, tzinfo=UTC)


def create_dispatcher(
    store: InMemoryEntryStore,
    settings: ChannelSettings,
    messenger: MagicMock,
    message: MagicMock | None,
    now: datetime,
) -> EntryDispatcher:
    """Build a dispatcher wired to mocks with a frozen clock."""
    locator = MagicMock()
    lookup = MessageLookup.hit(message) if message is not None else MessageLookup.missing(1)
    locator.locate = AsyncMock(return_value=lookup)
    display = MagicMock()
    display.render = MagicMock(return_value="display")
    return EntryDispatcher(
        store=store,
        settings_for=lambda _channel_id: settings,
        messenger=messenger,
        locator=locator,
        templates=DefaultTemplateResolver(),
        display=display,
        check_interval=0.01,
        clock=lambda: now,
    )


class TestDueTriggers:
    """Test which triggers are due."""

    def test_nothing_due(self) -> None:
        """Test an entry well before its first timestamp."""
        entry = create_test_entry(start=START)

        assert due_triggers(entry, START - timedelta(hours=1)) == []

    def test_start_due(self) -> None:
        """Test that start is due at the start time."""
        assert due_triggers(create_test_entry(start=START), START) == [TriggerKind.START]

    def test_end_due_only_once_started(self) -> None:
        """Test that end replaces start once the entry has started."""
        entry = create_test_entry(start=START, has_started=True)

        assert due_triggers(entry, START + timedelta(minutes=30)) == []
        assert due_triggers(entry, START + timedelta(hours=1)) == [TriggerKind.END]

    def test_order_of_triggers(self) -> None:
        """Test that announcements and reminders come before the transition."""
        entry = create_test_entry(start=START, start_reminders=[START - timedelta(minutes=10)])
        _ = entry.announcements.add("general", "START", "now", lambda _spec: START)

        assert due_triggers(entry, START) == [
            TriggerKind.ANNOUNCE,
            TriggerKind.REMIND,
            TriggerKind.START,
        ]


class TestScan:
    """Test scanning the store."""

    @pytest.mark.asyncio
    async def test_scan_ignores_entries_not_due(
        self,
        store: InMemoryEntryStore,
        settings: ChannelSettings,
        messenger: MagicMock,
        message: MagicMock,
    ) -> None:
        """Test that nothing is touched when nothing is due."""
        store.save_entry(create_test_entry(start=START).to_record())
        dispatcher = create_dispatcher(
            store, settings, messenger, message, START - timedelta(hours=2)
        )

        assert await dispatcher.scan() == 0

        dispatcher.locator.locate.assert_not_awaited()  # pyright: ignore[reportAttributeAccessIssue]

    @pytest.mark.asyncio
    async def test_scan_starts_due_entry(
        self,
        store: InMemoryEntryStore,
        settings: ChannelSettings,
        messenger: MagicMock,
        message: MagicMock,
        announce_channel: MagicMock,
    ) -> None:
        """Test that a due entry is started and persisted."""
        store.save_entry(create_test_entry(start=START).to_record())
        dispatcher = create_dispatcher(store, settings, messenger, message, START)

        assert await dispatcher.scan() == 1

        messenger.send.assert_awaited_once_with("Event **Raid Night** has begun!", announce_channel)
        assert store.records[1]["hasStarted"] is True

    @pytest.mark.asyncio
    async def test_start_and_end_in_one_pass(
        self,
        store: InMemoryEntryStore,
        settings: ChannelSettings,
        messenger: MagicMock,
        message: MagicMock,
    ) -> None:
        """Test that an entry missed entirely is started and ended in the same scan."""
        store.save_entry(create_test_entry(start=START, duration=timedelta(minutes=30)).to_record())
        dispatcher = create_dispatcher(
            store, settings, messenger, message, START + timedelta(hours=2)
        )

        _ = await dispatcher.scan()

        assert store.deleted == [1]
        messenger.delete.assert_awaited_once_with(message)
        messenger.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreadable_record_is_skipped(
        self,
        store: InMemoryEntryStore,
        settings: ChannelSettings,
        messenger: MagicMock,
        message: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that a broken record does not stop other entries."""
        store.records[2] = {"_id": 2, "channelId": 1000, "guildId": 2000}
        store.save_entry(create_test_entry(start=START).to_record())
        dispatcher = create_dispatcher(store, settings, messenger, message, START)

        with caplog.at_level(logging.ERROR):
            assert await dispatcher.scan() == 1

        assert "Skipping unreadable entry record 2" in caplog.text
        assert store.records[1]["hasStarted"] is True

    @pytest.mark.asyncio
    async def test_missing_message_leaves_entry_due(
        self,
        store: InMemoryEntryStore,
        settings: ChannelSettings,
        messenger: MagicMock,
    ) -> None:
        """Test that an entry whose message is gone is retried on a later scan."""
        store.save_entry(create_test_entry(start=START).to_record())
        dispatcher = create_dispatcher(store, settings, messenger, None, START)

        _ = await dispatcher.scan()

        assert store.records[1]["hasStarted"] is False
        assert await dispatcher.scan() == 1


class TestProcess:
    """Test per-entry processing."""

    @pytest.mark.asyncio
    async def test_concurrent_processing_is_serialised(
        self,
        store: InMemoryEntryStore,
        settings: ChannelSettings,
        messenger: MagicMock,
        message: MagicMock,
    ) -> None:
        """Test that two overlapping runs for one entry announce its start once."""
        store.save_entry(create_test_entry(start=START).to_record())
        dispatcher = create_dispatcher(store, settings, messenger, message, START)

        _ = await asyncio.gather(dispatcher.process(1), dispatcher.process(1))

        assert messenger.send.await_count == 1

    @pytest.mark.asyncio
    async def test_unknown_entry_is_ignored(
        self,
        store: InMemoryEntryStore,
        settings: ChannelSettings,
        messenger: MagicMock,
        message: MagicMock,
    ) -> None:
        """Test that processing a deleted entry does nothing."""
        dispatcher = create_dispatcher(store, settings, messenger, message, START)

        await dispatcher.process(99)

        messenger.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_removed_entry_releases_lock(
        self,
        store: InMemoryEntryStore,
        settings: ChannelSettings,
        messenger: MagicMock,
        message: MagicMock,
    ) -> None:
        """Test that the lock of a removed entry is dropped."""
        store.save_entry(create_test_entry(start=START, has_started=True).to_record())
        dispatcher = create_dispatcher(
            store, settings, messenger, message, START + timedelta(hours=1)
        )

        await dispatcher.process(1)

        assert store.deleted == [1]
        assert 1 not in dispatcher._locks  # pyright: ignore[reportPrivateUsage]


class TestLifecycle:
    """Test starting and stopping the scan loop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(
        self,
        store: InMemoryEntryStore,
        settings: ChannelSettings,
        messenger: MagicMock,
        message: MagicMock,
    ) -> None:
        """Test that the loop runs scans until stopped."""
        store.save_entry(create_test_entry(start=START).to_record())
        dispatcher = create_dispatcher(store, settings, messenger, message, START)

        await dispatcher.start()
        assert dispatcher.is_running()
        await asyncio.sleep(0.05)
        await dispatcher.stop()

        assert not dispatcher.is_running()
        assert store.records[1]["hasStarted"] is True
