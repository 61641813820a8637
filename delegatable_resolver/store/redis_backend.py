"""
Redis Key/Value Backend

Drop-in replacement for the in-memory MemoryStore.
Same interface, backed by a Redis database.

Key model:
  - every resolver key is stored under `<prefix>:<hex(key)>`
  - values are raw bytes
  - a transaction's writes go out in one MULTI/EXEC pipeline, so other
    clients see all of them or none
  - the keys the transaction read are WATCHed and compared first, so two
    processes cannot both commit a check-then-write on the same key

Thread safety: the redis client handles connection pooling.
"""

import logging
from typing import Optional

import redis

from delegatable_resolver.core.errors import TransactionConflict


logger = logging.getLogger(__name__)


class RedisStore:
    """Key/value store on Redis with atomic, optimistic batch apply."""

    def __init__(self, host: str = "localhost", port: int = 6379,
                 password: str = "", db: int = 0, prefix: str = "resolver",
                 client: Optional["redis.Redis"] = None):
        self.prefix = prefix
        if client is not None:
            self._r = client
        else:
            self._r = redis.Redis(host=host, port=port, password=password or None,
                                  db=db, decode_responses=False)
        # Fail fast on a bad connection so the caller can fall back
        self._r.ping()
        logger.info(f"Connected to Redis at {host}:{port}/{db} (prefix {prefix!r})")

    def _key(self, key: bytes) -> str:
        return f"{self.prefix}:{key.hex()}"

    def get(self, key: bytes) -> Optional[bytes]:
        return self._r.get(self._key(key))

    def apply(self, writes: dict[bytes, Optional[bytes]],
              expected: Optional[dict[bytes, Optional[bytes]]] = None) -> None:
        """Apply a batch in one MULTI/EXEC. A None value deletes the key.

        Keys in `expected` are WATCHed and must still hold the values the
        writer read, otherwise TransactionConflict and nothing is written.
        """
        if not writes:
            return
        expected = expected or {}
        try:
            with self._r.pipeline(transaction=True) as pipe:
                if expected:
                    pipe.watch(*(self._key(key) for key in expected))
                    for key, value in expected.items():
                        if pipe.get(self._key(key)) != value:
                            raise TransactionConflict(f"key {key.hex()} changed before commit")
                pipe.multi()
                for key, value in writes.items():
                    if value is None:
                        pipe.delete(self._key(key))
                    else:
                        pipe.set(self._key(key), value)
                pipe.execute()
        except redis.WatchError:
            logger.warning(f"commit of {len(writes)} writes lost a race on a watched key")
            raise TransactionConflict("a watched key changed during commit")

    def __len__(self) -> int:
        return sum(1 for _ in self._r.scan_iter(match=f"{self.prefix}:*"))
