"""
records.registry
~~~~~~~~~~~~~~~~

Catalogue of uploaded patient documents.

The registry validates incoming files, reports upload progress, and keeps
one JSON document per file in a :class:`KeyValueStore` together with an
index of known ids:

* ``uploaded_files_index`` - JSON array of file ids
* ``uploaded_file_<id>`` - JSON object of the :class:`FileRecord`

The store is the source of truth.  An optional read-through cache avoids
re-parsing records that were already loaded.
"""

from __future__ import annotations

import json
import logging
import secrets
import string
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import quote

from ..config import settings
from ..errors import BatchUploadError, UploadCancelled, ValidationError
from .database import KeyValueStore, StoreTransaction
from .models import (
    COMPLETED,
    ERROR,
    UPLOADING,
    FileRecord,
    StorageStats,
    UploadFile,
    UploadProgress,
)

logger = logging.getLogger(__name__)

INDEX_KEY = "uploaded_files_index"
RECORD_KEY_PREFIX = "uploaded_file_"

_ID_ALPHABET = string.digits + string.ascii_lowercase

ProgressCallback = Callable[[List[UploadProgress]], None]


def record_key(file_id: str) -> str:
    return f"{RECORD_KEY_PREFIX}{file_id}"


class FileRegistry:
    """
    Validate, store and look up uploaded documents.

    Parameters
    ----------
    store : KeyValueStore
        Durable backing store.
    clock : callable, optional
        Returns the current time in seconds since the epoch.
    cache : bool
        Keep parsed records in memory.  The store is still consulted on every
        lookup, so records deleted elsewhere are never served.
    progress_step : float
        Percentage added at each progress tick.
    tick_seconds : float
        Pause between two progress ticks.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        cache: bool = True,
        progress_step: float = settings.UPLOAD_PROGRESS_STEP,
        tick_seconds: float = settings.UPLOAD_TICK_SECONDS,
        max_size: int = settings.MAX_UPLOAD_SIZE,
        allowed_types: Iterable[str] = settings.ALLOWED_MIME_TYPES,
        url_base: str = settings.FILE_URL_BASE,
    ):
        if progress_step <= 0:
            raise ValueError("progress_step must be positive")
        self.store = store
        self._clock = clock
        self._cache: Optional[Dict[str, FileRecord]] = {} if cache else None
        self.progress_step = progress_step
        self.tick_seconds = tick_seconds
        self.max_size = max_size
        self.allowed_types = frozenset(allowed_types)
        self.url_base = url_base.rstrip("/")
        # serialises read-modify-write of the index
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "FileRegistry":
        return cls(KeyValueStore(settings.RECORDS_DATABASE_URL))

    # ------------------------------------------------------------------ #
    # Upload
    # ------------------------------------------------------------------ #

    def upload(
        self,
        files: Iterable[UploadFile],
        patient_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[FileRecord]:
        """
        Upload every file of *files*.

        A rejected file does not stop the others.  When at least one file was
        rejected, :class:`BatchUploadError` is raised once the batch is done;
        its ``uploaded`` attribute lists the records that were stored.
        """
        uploaded: List[FileRecord] = []
        errors: List[ValidationError] = []
        for upload_file in files:
            try:
                uploaded.append(
                    self.upload_one(upload_file, patient_id, on_progress, cancel_event)
                )
            except ValidationError as exc:
                errors.append(exc)
        if errors:
            raise BatchUploadError(errors, uploaded)
        return uploaded

    def upload_one(
        self,
        upload_file: UploadFile,
        patient_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> FileRecord:
        file_id = self._generate_id()

        def emit(progress: float, status: str, error: Optional[str] = None) -> None:
            if on_progress is not None:
                on_progress([UploadProgress(file_id, upload_file.name, progress, status, error)])

        try:
            self.validate(upload_file)
        except ValidationError as exc:
            emit(0.0, ERROR, exc.reason)
            raise

        progress = 0.0
        emit(progress, UPLOADING)
        while progress < 100.0:
            if cancel_event is not None and cancel_event.is_set():
                emit(progress, ERROR, "upload cancelled")
                raise UploadCancelled(upload_file.name)
            if self.tick_seconds:
                time.sleep(self.tick_seconds)
            progress = min(progress + self.progress_step, 100.0)
            emit(progress, COMPLETED if progress >= 100.0 else UPLOADING)

        record = FileRecord(
            id=file_id,
            name=upload_file.name,
            size=upload_file.size,
            type=upload_file.type,
            url=f"{self.url_base}/{file_id}/{quote(upload_file.name, safe='')}",
            uploaded_at=self._now().isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            patient_id=patient_id,
        )
        self._save(record)
        logger.debug("Stored %s as %s (%d bytes)", record.name, record.id, record.size)
        return record

    def validate(self, upload_file: UploadFile) -> None:
        """Raise :class:`ValidationError` if *upload_file* may not be stored."""
        if upload_file.size < 0:
            raise ValidationError(upload_file.name, "invalid file size")
        if upload_file.size > self.max_size:
            raise ValidationError(
                upload_file.name,
                f"file too large ({upload_file.size} bytes, max {self.max_size})",
            )
        if upload_file.type not in self.allowed_types:
            raise ValidationError(upload_file.name, f"file type not allowed: {upload_file.type}")

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get(self, file_id: str) -> Optional[FileRecord]:
        raw = self.store.get(record_key(file_id))
        if raw is None:
            if self._cache is not None:
                self._cache.pop(file_id, None)
            return None
        if self._cache is not None and file_id in self._cache:
            return self._cache[file_id]
        record = self._parse(file_id, raw)
        if record is not None and self._cache is not None:
            self._cache[file_id] = record
        return record

    def get_by_patient(self, patient_id: str) -> List[FileRecord]:
        return [r for r in self.all_files() if r.patient_id == patient_id]

    def all_files(self) -> List[FileRecord]:
        """Every indexed record; ids whose document is missing are skipped."""
        with self.store.transaction() as tx:
            records = [self._parse(i, tx.get(record_key(i))) for i in self._read_index(tx)]
        records = [r for r in records if r is not None]
        if self._cache is not None:
            self._cache.update((r.id, r) for r in records)
        return records

    def stats(self) -> StorageStats:
        records = self.all_files()
        by_type: Dict[str, int] = {}
        for record in records:
            kind = record.type or "unknown"
            by_type[kind] = by_type.get(kind, 0) + 1
        return StorageStats(
            total_files=len(records),
            total_size=sum(r.size for r in records),
            files_by_type=by_type,
        )

    def __len__(self) -> int:
        with self.store.transaction() as tx:
            return len(self._read_index(tx))

    # ------------------------------------------------------------------ #
    # Removal
    # ------------------------------------------------------------------ #

    def delete(self, file_id: str) -> bool:
        """Remove a record; returns ``False`` if there was nothing to remove."""
        if self._cache is not None:
            self._cache.pop(file_id, None)
        with self._lock, self.store.transaction() as tx:
            removed = tx.remove(record_key(file_id))
            index = self._read_index(tx)
            if file_id in index:
                tx.set(INDEX_KEY, json.dumps([i for i in index if i != file_id]))
                removed = True
        if removed:
            logger.debug("Deleted file %s", file_id)
        return removed

    def cleanup_older_than(self, days: float = settings.FILE_RETENTION_DAYS) -> int:
        """Delete records uploaded more than *days* ago; returns how many."""
        cutoff = self._now() - timedelta(days=days)
        deleted = 0
        for record in self.all_files():
            if record.uploaded_datetime < cutoff and self.delete(record.id):
                deleted += 1
        logger.info("Cleanup removed %d file(s) older than %s days", deleted, days)
        return deleted

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _generate_id(self) -> str:
        while True:
            suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
            file_id = f"file_{int(self._clock() * 1000)}_{suffix}"
            if self.store.get(record_key(file_id)) is None:
                return file_id

    def _save(self, record: FileRecord) -> None:
        with self._lock, self.store.transaction() as tx:
            tx.set(record_key(record.id), json.dumps(record.to_dict()))
            index = self._read_index(tx)
            if record.id not in index:
                index.append(record.id)
                tx.set(INDEX_KEY, json.dumps(index))
        if self._cache is not None:
            self._cache[record.id] = record

    @staticmethod
    def _read_index(tx: StoreTransaction) -> List[str]:
        raw = tx.get(INDEX_KEY)
        if raw is None:
            return []
        try:
            index = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt %s entry", INDEX_KEY)
            return []
        if not isinstance(index, list):
            logger.warning("Ignoring corrupt %s entry", INDEX_KEY)
            return []
        return [str(i) for i in index]

    @staticmethod
    def _parse(file_id: str, raw: Optional[str]) -> Optional[FileRecord]:
        if raw is None:
            return None
        try:
            return FileRecord.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.warning("Ignoring corrupt record for file %s", file_id)
            return None
