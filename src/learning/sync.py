"""Write-behind persistence: in-memory state is authoritative, the store catches up."""

import threading
from collections import defaultdict
from typing import Optional

import structlog

from cli.retry import retry_from_config
from observability import metrics

from .repository import LearningRepository

logger = structlog.get_logger()

# collection -> serialized records to upsert, plus (collection, id) pairs to delete
Payload = tuple[dict[str, list[dict]], list[tuple[str, str]]]


class WriteBehindSync:
    """Collects dirty records and writes them to the repository.

    `flush()` makes one attempt and never raises; whatever fails stays
    pending for the next flush or an explicit `sync()`, which retries with
    backoff. Pending records are serialized under `lock` (the engine passes
    its own), but the store is written and retried with the lock released,
    so mutations never wait on I/O. A record marked again while its batch is
    in flight stays pending and goes out with the next write.
    """

    def __init__(self, repository: LearningRepository, retry_config=None, lock=None):
        self.repository = repository
        self.retry_config = retry_config
        self._lock = lock if lock is not None else threading.RLock()
        # One batch in flight at a time, so the store sees batches in snapshot order
        self._write_lock = threading.Lock()
        # (collection, id) -> (generation, record with to_dict() or None for a delete)
        self._pending: dict[tuple[str, str], tuple[int, Optional[object]]] = {}
        self._generation = 0

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def mark(self, collection: str, record) -> None:
        self._set(collection, record.id, record)

    def mark_deleted(self, collection: str, record_id: str) -> None:
        self._set(collection, record_id, None)

    def _set(self, collection: str, record_id: str, record) -> None:
        with self._lock:
            self._generation += 1
            self._pending[(collection, record_id)] = (self._generation, record)

    def flush(self) -> bool:
        """Single write attempt. Returns False (and keeps the batch) on failure.

        Does not wait when another write is in flight: the records stay
        pending and go out with the next flush or sync.
        """
        if not self._write_lock.acquire(blocking=False):
            logger.debug("persistence_flush_deferred", pending=self.pending_count)
            return False
        try:
            return self._write_batch(self._write, retried=False)
        finally:
            self._write_lock.release()

    def sync(self) -> bool:
        """Write everything pending, retrying with backoff before giving up."""
        with self._write_lock:
            writer = retry_from_config(self.retry_config)(self._write)
            return self._write_batch(writer, retried=True)

    def _write_batch(self, writer, retried: bool) -> bool:
        # Only this method removes entries, and it runs under _write_lock
        if not self.pending_count:
            return True
        try:
            with metrics.timer("persistence_flush"):
                with self._lock:
                    generations = {key: gen for key, (gen, _) in self._pending.items()}
                    payload = self._serialize()
                writer(payload)
        except Exception as e:
            metrics.counter("persistence_failures")
            if retried:
                logger.error("persistence_sync_failed", pending=len(generations), error=str(e))
            else:
                logger.warning("persistence_flush_failed", pending=len(generations), error=str(e))
            return False

        with self._lock:
            for key, generation in generations.items():
                entry = self._pending.get(key)
                if entry is not None and entry[0] == generation:
                    del self._pending[key]
        if retried:
            logger.debug("persistence_synced", records=len(generations))
        return True

    def _serialize(self) -> Payload:
        puts: dict[str, list[dict]] = defaultdict(list)
        deletes: list[tuple[str, str]] = []
        for (collection, record_id), (_, record) in self._pending.items():
            if record is None:
                deletes.append((collection, record_id))
            else:
                puts[collection].append(record.to_dict())
        return dict(puts), deletes

    def _write(self, payload: Payload) -> None:
        puts, deletes = payload
        for collection, records in puts.items():
            self.repository.bulk_put(collection, records)
        for collection, record_id in deletes:
            self.repository.delete(collection, record_id)
