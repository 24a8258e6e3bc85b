from __future__ import annotations

import pytest
from redis.exceptions import LockNotOwnedError
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from tabular_ingest.core.errors import ImportInProgress, ImportLockLost
from tabular_ingest.decoders import SourceFormat
from tabular_ingest.services.batch_importer import BatchImporter, ImportStatus
from tabular_ingest.services.import_locks import (
    LOCK_PREFIX,
    LocalImportLocks,
    RedisImportLocks,
    build_import_locks,
)
from tabular_ingest.services.registry import DatasetRegistry
from tests.fixtures.sources import build_csv


class DummyLock:
    def __init__(self, client: "DummyRedis", name: str, *, expired: bool = False) -> None:
        self.client = client
        self.name = name
        self.expired = expired

    def acquire(self) -> bool:
        if self.name in self.client.held:
            return False
        self.client.held.add(self.name)
        return True

    def release(self) -> None:
        self.client.held.discard(self.name)
        if self.expired:
            raise LockNotOwnedError("lock expired")

    def extend(self, additional_time: int, replace_ttl: bool = False) -> bool:
        self.client.extends.append((self.name, additional_time, replace_ttl))
        if self.client.extend_budget is not None and len(self.client.extends) > self.client.extend_budget:
            raise LockNotOwnedError("lock expired")
        return True


class DummyRedis:
    def __init__(self, *, expire_locks: bool = False, extend_budget: int | None = None) -> None:
        self.held: set[str] = set()
        self.calls: list[tuple[str, int, bool]] = []
        self.extends: list[tuple[str, int, bool]] = []
        self.expire_locks = expire_locks
        # Number of extends that succeed before the lock counts as lost
        self.extend_budget = extend_budget

    def lock(self, name: str, timeout: int, blocking: bool) -> DummyLock:
        self.calls.append((name, timeout, blocking))
        return DummyLock(self, name, expired=self.expire_locks)


def test_local_lock_rejects_second_import_into_same_table() -> None:
    locks = LocalImportLocks()

    with locks.hold("orders"):
        with pytest.raises(ImportInProgress):
            with locks.hold("Orders"):
                pass
        with locks.hold("customers"):
            pass

    with locks.hold("orders"):
        pass


def test_local_lock_is_released_when_import_raises() -> None:
    locks = LocalImportLocks()

    with pytest.raises(RuntimeError):
        with locks.hold("orders"):
            raise RuntimeError("import blew up")

    with locks.hold("orders"):
        pass


def test_redis_lock_uses_non_blocking_lock_per_table() -> None:
    client = DummyRedis()
    locks = RedisImportLocks(client, timeout_seconds=60)

    with locks.hold("Orders"):
        assert client.held == {f"{LOCK_PREFIX}orders"}
        with pytest.raises(ImportInProgress):
            with locks.hold("orders"):
                pass

    assert client.held == set()
    assert client.calls[0] == (f"{LOCK_PREFIX}orders", 60, False)


def test_redis_lock_release_failure_is_not_raised() -> None:
    locks = RedisImportLocks(DummyRedis(expire_locks=True), timeout_seconds=1)

    with locks.hold("orders"):
        pass


def test_build_import_locks_defaults_to_local(settings) -> None:
    assert isinstance(build_import_locks(settings), LocalImportLocks)


def _five_row_dataset(tmp_path, registry: DatasetRegistry) -> str:
    path = build_csv(tmp_path / "data.csv", ["n"], [[index] for index in range(1, 6)])
    return registry.create(path.name, str(path), SourceFormat.DELIMITED, path.stat().st_size)


def test_redis_lease_renews_full_timeout() -> None:
    client = DummyRedis()
    locks = RedisImportLocks(client, timeout_seconds=90)

    with locks.hold("orders") as lease:
        lease.renew()

    assert client.extends == [(f"{LOCK_PREFIX}orders", 90, True)]


def test_redis_lease_reports_lost_lock() -> None:
    locks = RedisImportLocks(DummyRedis(extend_budget=0), timeout_seconds=90)

    with locks.hold("orders") as lease:
        with pytest.raises(ImportLockLost):
            lease.renew()


def test_import_renews_redis_lock_before_every_batch(
    tmp_path, registry: DatasetRegistry, importer: BatchImporter
) -> None:
    dataset_id = _five_row_dataset(tmp_path, registry)
    client = DummyRedis()
    locks = RedisImportLocks(client, timeout_seconds=60)

    with locks.hold("renewed") as lease:
        job = importer.run(dataset_id, table_name="renewed", batch_size=2, renew_lock=lease.renew)

    assert job.status is ImportStatus.SUCCEEDED
    assert job.batches_committed == 3
    assert len(client.extends) == 3


def test_import_stops_at_batch_boundary_when_lock_is_lost(
    tmp_path, engine: Engine, registry: DatasetRegistry, importer: BatchImporter
) -> None:
    dataset_id = _five_row_dataset(tmp_path, registry)
    locks = RedisImportLocks(DummyRedis(extend_budget=1), timeout_seconds=60)

    with locks.hold("expiring") as lease:
        job = importer.run(dataset_id, table_name="expiring", batch_size=2, renew_lock=lease.renew)

    assert job.status is ImportStatus.PARTIALLY_SUCCEEDED
    assert job.rows_inserted == 2
    assert job.batches_committed == 1
    assert "Lost the import lock" in (job.failure_reason or "")
    assert inspect(engine).has_table("expiring")
    with engine.connect() as conn:
        assert conn.execute(text('SELECT COUNT(*) FROM "expiring"')).scalar_one() == 2
    assert registry.get(dataset_id).row_count is None


def test_local_lease_renew_is_harmless() -> None:
    with LocalImportLocks().hold("orders") as lease:
        lease.renew()
