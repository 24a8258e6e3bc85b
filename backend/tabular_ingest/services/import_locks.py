"""At-most-one in-flight import per destination table name."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from redis import Redis
from redis.exceptions import LockError, RedisError
from redis.lock import Lock

from tabular_ingest.core.config import Settings
from tabular_ingest.core.errors import ImportInProgress, ImportLockLost
from tabular_ingest.utils.redis_client import create_redis_client

logger = logging.getLogger(__name__)

LOCK_PREFIX = "imports:lock:"


class LocalLease:
    """Held lock on one table name; a process-local lock cannot expire."""

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name

    def renew(self) -> None:
        pass


class RedisLease:
    """Held redis lock; ``renew`` pushes its expiry out by the full timeout."""

    def __init__(self, lock: Lock, table_name: str, timeout_seconds: int) -> None:
        self.lock = lock
        self.table_name = table_name
        self.timeout_seconds = timeout_seconds

    def renew(self) -> None:
        try:
            self.lock.extend(self.timeout_seconds, replace_ttl=True)
        except (LockError, RedisError) as e:
            raise ImportLockLost(
                f"Lost the import lock for table '{self.table_name}': {e}",
                subject=self.table_name,
            ) from e


class LocalImportLocks:
    """Process-wide lock per table name; enough for a single API process."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: set[str] = set()

    @contextmanager
    def hold(self, table_name: str) -> Iterator[LocalLease]:
        key = table_name.lower()
        with self._guard:
            if key in self._held:
                raise ImportInProgress(
                    f"An import into table '{table_name}' is already running",
                    subject=table_name,
                )
            self._held.add(key)
        try:
            yield LocalLease(table_name)
        finally:
            with self._guard:
                self._held.discard(key)


class RedisImportLocks:
    """Redis-backed lock so several API processes share one guard per table.

    The lock carries a timeout so a crashed holder cannot block the table
    forever; holders call ``renew`` on the yielded lease between batches.
    """

    def __init__(self, client: Redis, *, timeout_seconds: int) -> None:
        self.client = client
        self.timeout_seconds = timeout_seconds

    @contextmanager
    def hold(self, table_name: str) -> Iterator[RedisLease]:
        lock = self.client.lock(
            f"{LOCK_PREFIX}{table_name.lower()}",
            timeout=self.timeout_seconds,
            blocking=False,
        )
        if not lock.acquire():
            raise ImportInProgress(
                f"An import into table '{table_name}' is already running",
                subject=table_name,
            )
        try:
            yield RedisLease(lock, table_name, self.timeout_seconds)
        finally:
            try:
                lock.release()
            except (LockError, RedisError) as e:
                # Lock expired mid-import; the timeout already freed it
                logger.warning(f"Failed to release import lock for {table_name}: {e}")


ImportLocks = LocalImportLocks | RedisImportLocks


def build_import_locks(settings: Settings) -> ImportLocks:
    if settings.import_lock_backend == "redis":
        client = create_redis_client(settings.redis_url, socket_connect_timeout=2)
        logger.info("Using Redis import locks")
        return RedisImportLocks(client, timeout_seconds=settings.import_lock_timeout_seconds)
    return LocalImportLocks()
