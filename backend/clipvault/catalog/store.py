"""
JSON-file catalog store.

One JSON document per catalog: an array of records in insertion order.
Append-only. Records are never updated or deleted here.

append() is read-modify-write over a shared file, so every append against
the same file is serialized by ONE process-wide lock, regardless of how
many store instances point at it. Writes land in a sibling temp file and
are swapped in with os.replace, so readers never see a half-written array.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Generic, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..media.errors import StorageFailed

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


# One lock per resolved catalog path, shared by every store in the process.
_path_locks: Dict[str, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _path_locks[key] = lock
        return lock


class JsonCatalogStore(Generic[RecordT]):
    """
    Append-only record list backed by a single JSON file.

    Records are pydantic models, persisted with their wire (alias) names.
    """

    def __init__(self, path: Path, model: Type[RecordT]):
        """
        Initialize the store. The file is not touched until first use.

        Args:
            path: JSON file holding the record array
            model: pydantic model used to validate persisted records
        """
        self.path = Path(path)
        self.model = model
        self._lock = _lock_for(self.path)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def append(self, record: RecordT) -> RecordT:
        """
        Append a record and persist the full list.

        Raises:
            StorageFailed: If the catalog cannot be read or written
        """
        with self._lock:
            items = self._read_items()
            items.append(record.model_dump(by_alias=True, mode="json"))
            self._write_items(items)
        logger.info(f"[Catalog] Appended record {getattr(record, 'id', '?')} to {self.path.name} ({len(items)} total)")
        return record

    def list(self) -> List[RecordT]:
        """
        Return every record in insertion order.

        Raises:
            StorageFailed: If the catalog cannot be read or holds invalid records
        """
        with self._lock:
            items = self._read_items()
        try:
            return [self.model.model_validate(item) for item in items]
        except ValidationError as e:
            raise StorageFailed(f"Catalog {self.path} contains an invalid record: {e}") from e

    def __len__(self) -> int:
        with self._lock:
            return len(self._read_items())

    # =========================================================================
    # FILE I/O (caller holds the lock)
    # =========================================================================

    def _ensure_exists(self) -> None:
        if self.path.exists():
            return
        logger.info(f"[Catalog] Initializing empty catalog at {self.path}")
        self._write_items([])

    def _read_items(self) -> List[dict]:
        try:
            self._ensure_exists()
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageFailed(f"Catalog {self.path} is not valid JSON: {e}") from e
        except OSError as e:
            raise StorageFailed(f"Failed to read catalog {self.path}: {e}") from e

        if not isinstance(data, list):
            raise StorageFailed(f"Catalog {self.path} must hold a JSON array, found {type(data).__name__}")
        return data

    def _write_items(self, items: List[dict]) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                dir=str(self.path.parent),
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise StorageFailed(f"Failed to write catalog {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning(f"[Catalog] Could not remove temp file {tmp_name}")
