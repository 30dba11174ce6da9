"""
Local Storage Backends

Two implementations of KeyValueBackend:

- InMemoryBackend: for tests and throwaway sessions
- JsonFileBackend: one JSON document on disk holding every record

TRADEOFFS:
- The whole document is rewritten on every change (fine for a
  single-user ledger)
- Writes go to a temp file that is renamed over the original, so a
  crash or a concurrent reader never sees a half-written document
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from kazi_ledger.services.storage.interface import KeyValueBackend, StorageError


class InMemoryBackend(KeyValueBackend):
    """
    Dict-backed storage.

    Values are serialized on write and parsed on read, exactly like the
    file backend, so callers never share mutable objects with the store.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._records: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._records[key] = json.dumps(value)

    def read(self, key: str) -> Optional[Any]:
        raw = self._records.get(key)
        return None if raw is None else json.loads(raw)

    def write(self, key: str, value: Any) -> None:
        self.write_many({key: value})

    def write_many(self, records: Mapping[str, Any]) -> None:
        try:
            encoded = {key: json.dumps(value) for key, value in records.items()}
        except (TypeError, ValueError) as e:
            raise StorageError(f"Record is not serializable: {e}")
        self._records.update(encoded)

    def delete(self, key: str) -> None:
        self._records.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._records)


class JsonFileBackend(KeyValueBackend):
    """
    Stores all records as one JSON object in a file.

    The file is re-read on every access so several store instances
    pointing at the same path stay consistent.
    """

    def __init__(self, path: Union[Path, str]):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except json.JSONDecodeError as e:
            raise StorageError(f"Ledger file is corrupt: {self._path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read ledger file {self._path}: {e}")
        if not isinstance(data, dict):
            raise StorageError(f"Ledger file is corrupt: {self._path}: expected an object")
        return data

    def _dump(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except (OSError, TypeError, ValueError) as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write ledger file {self._path}: {e}")

    def read(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._load().get(key)

    def write(self, key: str, value: Any) -> None:
        self.write_many({key: value})

    def write_many(self, records: Mapping[str, Any]) -> None:
        with self._lock:
            data = self._load()
            data.update(records)
            self._dump(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._dump(data)
