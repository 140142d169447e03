"""
Entry persistence for the scheduling system.

This module stores entry records in a single JSON document on disk, using
atomic replace-on-write so a crash never leaves a half written file.
"""

import json
import logging
import tempfile
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path

from ..utils.cli.paths import get_path_config
from ..utils.core.exceptions import EntryStoreError
from ..utils.time import get_system_now

logger = logging.getLogger(__name__)

STORE_VERSION = "1.0"
MAX_ENTRY_ID = 0xFFFF


@dataclass
class PersistentEntryData:
    """On-disk layout of the entry store."""

    entries: dict[str, dict[str, object]] = field(default_factory=dict)
    version: str = STORE_VERSION
    saved_at: str = field(default_factory=lambda: get_system_now().isoformat())

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "PersistentEntryData":
        """Create from dictionary for JSON deserialization."""
        entries = data.get("entries", {})
        if not isinstance(entries, dict):
            raise ValueError("'entries' must be a mapping")
        return cls(
            entries={str(k): dict(v) for k, v in entries.items()},  # pyright: ignore[reportUnknownArgumentType, reportUnknownVariableType]
            version=str(data.get("version", STORE_VERSION)),
            saved_at=str(data.get("saved_at", get_system_now().isoformat())),
        )


class JsonEntryStore:
    """
    Thread-safe JSON file store for entry records.

    Records are kept in memory and flushed to disk on every change.
    """

    def __init__(self, store_path: Path | None = None) -> None:
        """
        Initialize the entry store.

        Args:
            store_path: Path to the JSON file, defaults to data/entries.json
        """
        if store_path is None:
            store_path = get_path_config().get_entries_path()
        self.store_path: Path = store_path
        self._lock: threading.RLock = threading.RLock()

        self.store_path.parent.mkdir(parents=True, exist_ok=True)
        self._entries: dict[str, dict[str, object]] = self._load()

        logger.debug(
            f"JsonEntryStore initialized with {len(self._entries)} entries from {self.store_path}"
        )

    def load_entry(self, entry_id: int) -> dict[str, object] | None:
        with self._lock:
            record = self._entries.get(str(entry_id))
            return dict(record) if record is not None else None

    def save_entry(self, record: dict[str, object]) -> None:
        entry_id = record.get("_id")
        if entry_id is None:
            raise EntryStoreError("Cannot save an entry record without an '_id'")
        with self._lock:
            self._entries[str(entry_id)] = dict(record)
            self._flush()
        logger.debug(f"Saved entry [{entry_id}]")

    def delete_entry(self, entry_id: int) -> None:
        with self._lock:
            if self._entries.pop(str(entry_id), None) is None:
                logger.debug(f"Entry [{entry_id}] was not in the store")
                return
            self._flush()
        logger.debug(f"Deleted entry [{entry_id}]")

    def all_entries(self) -> list[dict[str, object]]:
        with self._lock:
            return [dict(record) for record in self._entries.values()]

    def next_entry_id(self) -> int:
        """
        Smallest positive ID not used by a stored entry.

        Raises:
            EntryStoreError: If every ID is taken
        """
        with self._lock:
            used = {int(key) for key in self._entries}
            for candidate in range(1, MAX_ENTRY_ID + 1):
                if candidate not in used:
                    return candidate
        raise EntryStoreError("No free entry IDs left")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _flush(self) -> None:
        """Write all records with an atomic replace."""
        data = PersistentEntryData(entries=self._entries)
        temp_file = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self.store_path.parent,
                prefix=f".{self.store_path.name}.",
                suffix=".tmp",
                delete=False,
            ) as temp_file:
                json.dump(data.to_dict(), temp_file, indent=2, ensure_ascii=False)
                temp_file.flush()
                temp_path = Path(temp_file.name)

            _ = temp_path.replace(self.store_path)

        except Exception as e:
            if temp_file and Path(temp_file.name).exists():
                Path(temp_file.name).unlink(missing_ok=True)
            raise EntryStoreError(f"Failed to save entries to {self.store_path}: {e}") from e

    def _load(self) -> dict[str, dict[str, object]]:
        if not self.store_path.exists():
            logger.debug("No entry store found, starting empty")
            return {}

        try:
            with self.store_path.open("r", encoding="utf-8") as f:
                raw: dict[str, object] = json.load(f)  # pyright: ignore[reportAny]
            data = PersistentEntryData.from_dict(raw)
        except (json.JSONDecodeError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Failed to load entry store (corrupted): {e}")
            self._backup_corrupted_store()
            return {}

        if data.version != STORE_VERSION:
            logger.warning(f"Entry store version {data.version} may not be compatible")

        logger.info(f"Loaded {len(data.entries)} entries from {self.store_path}")
        return data.entries

    def _backup_corrupted_store(self) -> None:
        """Move a corrupted store aside for debugging."""
        try:
            backup_path = self.store_path.with_suffix(
                f".corrupted.{get_system_now().strftime('%Y%m%d_%H%M%S')}.json"
            )
            _ = self.store_path.rename(backup_path)
            logger.info(f"Corrupted entry store backed up to: {backup_path}")
        except OSError as e:
            logger.error(f"Failed to backup corrupted entry store: {e}")
