"""
Reminder and announcement timestamp bookkeeping for schedule entries.

Reminders are derived data: they are regenerated from the configured
"minutes before" offsets whenever an entry's timing changes, and pruned once
they fire. Announcement overrides are user-defined one-off messages with a
stable per-entry local ID.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..utils.core.exceptions import UnresolvableTimeSpecError
from ..utils.time import add_minutes, as_utc, ensure_timezone_aware

logger = logging.getLogger(__name__)


def regenerate_reminders(
    reference: datetime, anchor: datetime, offsets_minutes: Iterable[int]
) -> list[datetime]:
    """
    Build the reminder timestamps that are still ahead of ``reference``.

    An offset ``t`` yields ``anchor - t minutes`` only if ``reference`` is at
    least ``t`` minutes before ``anchor``, so a freshly repeated entry never
    gets reminders in the past.

    Args:
        reference: The current instant
        anchor: Entry start (or end, for end reminders)
        offsets_minutes: Configured minutes-before values

    Returns:
        Sorted list of distinct reminder timestamps
    """
    remaining = as_utc(anchor) - as_utc(reference)
    reminders: set[datetime] = set()
    for offset in offsets_minutes:
        if remaining >= timedelta(minutes=offset):
            reminders.add(add_minutes(anchor, -offset))
    return sorted(reminders, key=as_utc)


def prune_due(timestamps: Iterable[datetime], now: datetime) -> list[datetime]:
    """Drop every timestamp at or before ``now``."""
    return [ts for ts in timestamps if as_utc(ts) > as_utc(now)]


def next_free_id(used: Iterable[int]) -> int:
    """
    Smallest non-negative integer not in ``used``.

    Examples:
        >>> next_free_id([0, 1, 3])
        2
        >>> next_free_id([])
        0
    """
    taken = set(used)
    candidate = 0
    while candidate in taken:
        candidate += 1
    return candidate


@dataclass(frozen=True)
class AnnouncementOverride:
    """A custom announcement bound to one entry."""

    scheduled_at: datetime
    time_spec: str
    target: str
    message: str


TimeSpecResolver = Callable[[str], datetime | None]


class AnnouncementTable:
    """
    Per-entry table of announcement overrides.

    Besides the overrides themselves the table keeps the set of distinct
    scheduled timestamps; overrides that share a timestamp fire together.
    """

    def __init__(self, overrides: dict[int, AnnouncementOverride] | None = None) -> None:
        self._overrides: dict[int, AnnouncementOverride] = dict(overrides or {})
        self._timestamps: set[datetime] = {
            override.scheduled_at for override in self._overrides.values()
        }

    def __len__(self) -> int:
        return len(self._overrides)

    def __contains__(self, local_id: object) -> bool:
        return local_id in self._overrides

    def get(self, local_id: int) -> AnnouncementOverride | None:
        return self._overrides.get(local_id)

    def items(self) -> list[tuple[int, AnnouncementOverride]]:
        """Overrides ordered by local ID."""
        return sorted(self._overrides.items())

    @property
    def timestamps(self) -> frozenset[datetime]:
        """Distinct scheduled timestamps, used for due checks."""
        return frozenset(self._timestamps)

    def add(
        self,
        target: str,
        time_spec: str,
        message: str,
        resolve: TimeSpecResolver,
    ) -> int:
        """
        Create a new override.

        Args:
            target: Channel identifier (snowflake or name)
            time_spec: Absolute or relative time expression
            message: Message template to send
            resolve: Turns ``time_spec`` into a timestamp, or None

        Returns:
            The local ID allocated for the override

        Raises:
            UnresolvableTimeSpecError: If ``resolve`` yields no timestamp; the
                table is left untouched
        """
        local_id = next_free_id(self._overrides)
        scheduled_at = resolve(time_spec)
        if scheduled_at is None:
            raise UnresolvableTimeSpecError(time_spec)

        scheduled_at = ensure_timezone_aware(scheduled_at)
        self._overrides[local_id] = AnnouncementOverride(
            scheduled_at=scheduled_at,
            time_spec=time_spec,
            target=target,
            message=message,
        )
        self._timestamps.add(scheduled_at)
        return local_id

    def remove(self, local_id: int) -> bool:
        """
        Delete an override.

        The timestamp stays in the distinct set while another override still
        references it.

        Returns:
            True if an override was removed
        """
        override = self._overrides.pop(local_id, None)
        if override is None:
            return False
        if not any(o.scheduled_at == override.scheduled_at for o in self._overrides.values()):
            self._timestamps.discard(override.scheduled_at)
        return True

    def due(self, now: datetime) -> list[tuple[datetime, list[tuple[int, AnnouncementOverride]]]]:
        """
        Overrides whose timestamp is at or before ``now``.

        Returns:
            (timestamp, [(local_id, override), ...]) pairs in chronological order
        """
        batches: list[tuple[datetime, list[tuple[int, AnnouncementOverride]]]] = []
        for timestamp in sorted(
            (ts for ts in self._timestamps if as_utc(ts) <= as_utc(now)), key=as_utc
        ):
            batch = [
                (local_id, override)
                for local_id, override in self.items()
                if override.scheduled_at == timestamp
            ]
            batches.append((timestamp, batch))
        return batches

    def to_record(self) -> dict[str, object]:
        """Serialise into the persisted announcement tables."""
        return {
            "announcements": [ts.isoformat() for ts in sorted(self._timestamps)],
            "announcement_dates": {
                str(i): o.scheduled_at.isoformat() for i, o in self.items()
            },
            "announcement_times": {str(i): o.time_spec for i, o in self.items()},
            "announcement_targets": {str(i): o.target for i, o in self.items()},
            "announcement_messages": {str(i): o.message for i, o in self.items()},
        }

    @classmethod
    def from_record(cls, record: dict[str, object]) -> "AnnouncementTable":
        """Rebuild the table from persisted announcement tables."""
        dates = _str_map(record.get("announcement_dates"))
        times = _str_map(record.get("announcement_times"))
        targets = _str_map(record.get("announcement_targets"))
        messages = _str_map(record.get("announcement_messages"))

        overrides: dict[int, AnnouncementOverride] = {}
        for key, raw_date in dates.items():
            try:
                local_id = int(key)
                scheduled_at = ensure_timezone_aware(datetime.fromisoformat(raw_date))
            except ValueError:
                logger.warning(f"Skipping malformed announcement override {key!r}: {raw_date!r}")
                continue
            overrides[local_id] = AnnouncementOverride(
                scheduled_at=scheduled_at,
                time_spec=times.get(key, ""),
                target=targets.get(key, ""),
                message=messages.get(key, ""),
            )
        return cls(overrides)


def _str_map(value: object) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items()}  # pyright: ignore[reportUnknownVariableType]
