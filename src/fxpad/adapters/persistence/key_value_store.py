# src/fxpad/adapters/persistence/key_value_store.py
"""
Key-Value Store - Device-Local Persistence of String Records

Every persisted record (pinned-rate config, rate alerts, reminder state,
cached rates, selected currencies, history) is a string stored under a
fixed key. Structured records are JSON-encoded by their owners through the
read_json/write_json helpers.

The interface is synchronous: get(keys), set(pairs), remove(keys).

JsonFileStore keeps the whole table in memory and rewrites one JSON file
atomically after every change. A write failure is logged and the in-memory
table stays authoritative for the rest of the session. A corrupt file is
backed up next to the original and the store starts empty.

Files that USE this module:
- fxpad.application.* (every service persists through a KeyValueStore)
- fxpad.adapters.notifications.telegram (message ids and pending notifications)
- fxpad.app (JsonFileStore at settings.store_file)

Files that this module USES:
- None (standard library only)
"""
from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

log = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Synchronous string key-value store."""

    @abstractmethod
    def get(self, keys: Iterable[str]) -> dict[str, Optional[str]]:
        """Return a mapping with every requested key (None when missing)."""
        raise NotImplementedError

    @abstractmethod
    def set(self, pairs: Mapping[str, str]) -> None:
        """Store all pairs."""
        raise NotImplementedError

    @abstractmethod
    def remove(self, keys: Iterable[str]) -> None:
        """Delete keys; missing keys are ignored."""
        raise NotImplementedError

    def get_one(self, key: str) -> Optional[str]:
        return self.get([key])[key]


class InMemoryStore(KeyValueStore):
    """Process-local store, used headless and in tests."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, keys: Iterable[str]) -> dict[str, Optional[str]]:
        return {key: self._data.get(key) for key in keys}

    def set(self, pairs: Mapping[str, str]) -> None:
        self._data.update({key: str(value) for key, value in pairs.items()})

    def remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Copy of the current table."""
        return dict(self._data)


class JsonFileStore(InMemoryStore):
    """In-memory table mirrored to a JSON file after every change."""

    def __init__(self, path: Union[str, Path]):
        """
        Args:
            path: JSON file path; the parent directory is created if needed
        """
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(self._load())

    def set(self, pairs: Mapping[str, str]) -> None:
        super().set(pairs)
        self._flush()

    def remove(self, keys: Iterable[str]) -> None:
        super().remove(keys)
        self._flush()

    def _load(self) -> dict[str, str]:
        """
        Read the table from disk.

        Handles corrupt files gracefully by backing them up to
        '<name>.json.corrupt' and starting with an empty table.
        """
        if not self.path.exists():
            return {}

        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            backup_path = self.path.with_suffix(".json.corrupt")
            try:
                shutil.copy2(self.path, backup_path)
                log.warning("Store file corrupted (JSON decode error), backed up to %s: %s",
                            backup_path, e)
                self.path.unlink()
            except OSError as backup_error:
                log.error("Failed to backup corrupt store file: %s", backup_error)
            return {}
        except OSError as e:
            log.error("Unable to read store file %s: %s", self.path, e)
            return {}

        if not isinstance(data, dict):
            log.warning("Store file %s is not a JSON object, starting empty", self.path)
            return {}

        return {str(key): str(value) for key, value in data.items() if value is not None}

    def _flush(self) -> None:
        """Atomically rewrite the JSON file (temp file + rename)."""
        temp_path = None
        try:
            temp_fd, temp_path = tempfile.mkstemp(
                suffix=".json.tmp",
                dir=str(self.path.parent),
                text=True,
            )
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_path, str(self.path))
        except (OSError, TypeError, ValueError) as e:
            log.error("Failed to persist store file %s: %s", self.path, e)
            if temp_path:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass


def read_json(store: KeyValueStore, key: str) -> Any:
    """
    Load and decode one JSON record.

    Returns None when the key is missing or the stored text is not valid JSON
    (the broken value is logged and left for the owner to overwrite).
    """
    raw = store.get_one(key)
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        log.warning("Ignoring malformed JSON under %r: %s", key, e)
        return None


def write_json(store: KeyValueStore, key: str, value: Any) -> None:
    """Encode one record as JSON and store it; failures are logged."""
    try:
        store.set({key: json.dumps(value, ensure_ascii=False)})
    except (TypeError, ValueError, OSError) as e:
        log.error("Failed to persist %r: %s", key, e)
