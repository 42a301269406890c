"""Session registry: the authoritative set of channel records."""

import json
import secrets
import threading
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable

from filelock import FileLock
from loguru import logger

from wabridge.errors import DuplicateIdentity, NotFound
from wabridge.registry.types import ChannelRecord, ChannelStatus, utcnow

STORE_VERSION = 1


def new_document_id() -> str:
    return f"wa-{secrets.token_hex(6)}"


class SessionRegistry:
    """
    In-memory channel registry.

    All mutations run under a single lock so check-and-insert is atomic
    even when called from several threads. Records handed out are copies.
    A mutation whose commit fails is rolled back before the error propagates.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._records: OrderedDict[str, ChannelRecord] = OrderedDict()
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identity: str) -> bool:
        return identity in self._records

    def list(self) -> list[ChannelRecord]:
        """Return all records in insertion order."""
        with self._lock:
            return [replace(r) for r in self._records.values()]

    def find(self, identity: str) -> ChannelRecord | None:
        """Return the record for ``identity`` or None."""
        with self._lock:
            record = self._records.get(identity)
            return replace(record) if record else None

    def insert(self, record: ChannelRecord) -> ChannelRecord:
        """Add a new record. Raises DuplicateIdentity if already present."""
        with self._mutation():
            if record.identity in self._records:
                raise DuplicateIdentity(record.identity)
            stored = replace(record)
            if stored.last_transition_at is None:
                stored.last_transition_at = self._clock()
            if not stored.document_id:
                stored.document_id = new_document_id()
            self._records[stored.identity] = stored
        return replace(stored)

    def update_status(self, identity: str, status: ChannelStatus) -> ChannelRecord:
        """Change a record's status. Raises NotFound if absent."""
        with self._mutation():
            current = self._records.get(identity)
            if current is None:
                raise NotFound(identity)
            record = replace(current, status=status)
            if status is ChannelStatus.ONLINE:
                record.last_transition_at = self._clock()
            self._records[identity] = record
        return replace(record)

    def remove(self, identity: str) -> ChannelRecord:
        """Delete a record. Raises NotFound if absent."""
        with self._mutation():
            record = self._records.pop(identity, None)
            if record is None:
                raise NotFound(identity)
        return record

    @contextmanager
    def _mutation(self):
        """Hold the lock, then commit; restore the previous records if the commit fails."""
        with self._lock:
            snapshot = OrderedDict(self._records)
            yield
            try:
                self._commit()
            except Exception:
                self._records = snapshot
                raise

    def _commit(self) -> None:
        """Hook called after every mutation, with the lock held."""


class JsonFileRegistry(SessionRegistry):
    """
    Registry persisted to a JSON file.

    The file is rewritten after each mutation with an atomic rename, under a
    file lock so two processes sharing the path never interleave writes.
    """

    def __init__(self, path: Path, clock: Callable[[], datetime] = utcnow):
        super().__init__(clock=clock)
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file_lock = FileLock(self.path.with_suffix(".lock"), timeout=10)
        self._load()

    def _load(self) -> None:
        with self._file_lock:
            data = _read_json_file(self.path, {"version": STORE_VERSION, "numbers": []})

        numbers = data.get("numbers") if isinstance(data, dict) else None
        if not isinstance(numbers, list):
            logger.warning(f"Unexpected layout in {self.path}, starting with an empty registry")
            return

        for item in numbers:
            if not isinstance(item, dict) or "id" not in item:
                continue
            try:
                record = ChannelRecord.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid record in {self.path}: {e}")
                continue
            if not record.document_id:
                record.document_id = new_document_id()
            self._records[record.identity] = record
        if self._records:
            logger.info(f"Loaded {len(self._records)} numbers from {self.path}")

    def _commit(self) -> None:
        with self._file_lock:
            _write_json_file(self.path, {
                "version": STORE_VERSION,
                "numbers": [r.to_dict() for r in self._records.values()],
            })


def _read_json_file(path: Path, default: dict) -> dict:
    """Safely read a JSON file."""
    try:
        if path.exists():
            return json.loads(path.read_text())
    except (json.JSONDecodeError, IOError) as e:
        logger.warning(f"Error reading {path}: {e}")
    return default


def _write_json_file(path: Path, data: dict) -> None:
    """Write a JSON file with atomic rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f".{secrets.token_hex(4)}.tmp")
    try:
        tmp_path.write_text(json.dumps(data, indent=2) + "\n")
        tmp_path.chmod(0o600)
        tmp_path.replace(path)
    finally:
        tmp_path.unlink(missing_ok=True)
