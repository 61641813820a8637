"""
Delegatable Resolver Transactional Substrate

All resolver state is bytes under bytes keys. Every external call runs in
one transaction:

  - writes and events are staged in a buffer owned by the transaction
  - reads inside the transaction see the staged writes first
  - on success the buffer is applied to the store in one atomic step and
    the events are appended to the journal
  - on any exception the buffer is dropped and nothing is visible

Transactions are serialized by a re-entrant lock. A transaction opened
while another is active on the same thread joins it, which is how a
multicall keeps all of its sub-calls in one unit.

The lock only covers one process. Across processes sharing a store, every
value a transaction read is handed to apply() as the expected state; the
store refuses the batch with TransactionConflict if any of them changed.

Production can use Redis (redis_backend.py). This module holds the
dict-based store used for development and testing.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from delegatable_resolver.core.errors import TransactionConflict
from delegatable_resolver.core.events import Event
from delegatable_resolver.core.log import EventJournal


logger = logging.getLogger(__name__)


MAX_KEY_PART = 0xFFFF     # 2-byte length prefix


def make_key(*parts: bytes) -> bytes:
    """Unambiguous composite key: each part is 2-byte length prefixed."""
    out = bytearray()
    for part in parts:
        if len(part) > MAX_KEY_PART:
            raise ValueError(f"key part of {len(part)} bytes exceeds {MAX_KEY_PART}")
        out.extend(len(part).to_bytes(2, "big"))
        out.extend(part)
    return bytes(out)


class MemoryStore:
    """In-memory key/value store with atomic batch apply."""

    def __init__(self):
        self._data: dict[bytes, bytes] = {}

    def get(self, key: bytes) -> Optional[bytes]:
        return self._data.get(key)

    def apply(self, writes: dict[bytes, Optional[bytes]],
              expected: Optional[dict[bytes, Optional[bytes]]] = None) -> None:
        """Apply a batch. A None value deletes the key.

        `expected` maps keys to the values the writer read; any difference
        rejects the whole batch.
        """
        if not writes:
            return
        for key, value in (expected or {}).items():
            if self._data.get(key) != value:
                raise TransactionConflict(f"key {key.hex()} changed before commit")
        for key, value in writes.items():
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)


class Transaction:
    """A staging buffer of writes and events over a store."""

    def __init__(self, store, txn_id: int):
        self.store = store
        self.txn_id = txn_id
        self.writes: dict[bytes, Optional[bytes]] = {}
        self.reads: dict[bytes, Optional[bytes]] = {}     # first committed value seen
        self.events: list[Event] = []

    def get(self, key: bytes) -> Optional[bytes]:
        if key in self.writes:
            return self.writes[key]
        if key not in self.reads:
            self.reads[key] = self.store.get(key)
        return self.reads[key]

    def put(self, key: bytes, value: bytes) -> None:
        self.writes[key] = value

    def delete(self, key: bytes) -> None:
        self.writes[key] = None

    def emit(self, event: Event) -> None:
        self.events.append(event)


class Substrate:
    """Store + journal + transaction discipline."""

    def __init__(self, store=None, journal: Optional[EventJournal] = None):
        self.store = store if store is not None else MemoryStore()
        self.journal = journal if journal is not None else EventJournal()
        self._lock = threading.RLock()
        self._local = threading.local()
        self._txn_counter = 0

    @property
    def active(self) -> Optional[Transaction]:
        return getattr(self._local, "txn", None)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Open a transaction, or join the one already open on this thread."""
        current = self.active
        if current is not None:
            yield current
            return

        with self._lock:
            self._txn_counter += 1
            txn = Transaction(self.store, self._txn_counter)
            self._local.txn = txn
            try:
                yield txn
            except BaseException:
                logger.debug(f"txn {txn.txn_id} aborted, dropping {len(txn.writes)} writes")
                raise
            else:
                self.store.apply(txn.writes, txn.reads)
                self.journal.append_batch(txn.events)
            finally:
                self._local.txn = None

    def read(self, key: bytes) -> Optional[bytes]:
        """Read through the active transaction if there is one."""
        txn = self.active
        if txn is not None:
            return txn.get(key)
        return self.store.get(key)
