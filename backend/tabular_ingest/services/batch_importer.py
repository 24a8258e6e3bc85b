"""Materialize a stored dataset into a dynamically created table.

Rows are re-read from the stored source and written in fixed-size batches,
one transaction per batch. A batch that fails to commit is rolled back on
its own and the import moves on to the next batch, so an import can end
with some rows committed and some lost; the job reports exactly how many
were committed.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from contextlib import closing
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any

from sqlalchemy import Column, Integer, MetaData, Table, Text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from tabular_ingest.core.errors import FormatError, ImportLockLost
from tabular_ingest.decoders import Row, open_row_stream
from tabular_ingest.services.census import CensusTracker
from tabular_ingest.services.registry import DatasetRegistry
from tabular_ingest.utils.identifiers import sanitize_columns, sanitize_identifier
from tabular_ingest.utils.memory_monitor import log_memory_status

logger = logging.getLogger(__name__)

ROW_ID_COLUMN = "_row_id"
DEFAULT_BATCH_SIZE = 200


class ImportStatus(str, Enum):
    IDLE = "idle"
    READING = "reading"
    WRITING_BATCH = "writing_batch"
    FINALIZING = "finalizing"
    SUCCEEDED = "succeeded"
    PARTIALLY_SUCCEEDED = "partially_succeeded"
    FAILED = "failed"


@dataclass
class BatchFailure:
    batch_number: int
    rows: int
    reason: str


@dataclass
class ImportJob:
    """State of one import call; lives only as long as that call."""

    dataset_id: str
    table_name: str
    batch_size: int
    status: ImportStatus = ImportStatus.IDLE
    columns: list[str] = field(default_factory=list)
    rows_read: int = 0
    rows_inserted: int = 0
    batches_committed: int = 0
    batch_failures: list[BatchFailure] = field(default_factory=list)
    decode_error: str | None = None
    failure_reason: str | None = None

    @property
    def rows_failed(self) -> int:
        return sum(failure.rows for failure in self.batch_failures)

    @property
    def fully_succeeded(self) -> bool:
        return self.status is ImportStatus.SUCCEEDED and not self.batch_failures

    def summary(self) -> str:
        return (
            f"{self.status.value}: {self.rows_inserted}/{self.rows_read} rows into "
            f"'{self.table_name}' ({self.batches_committed} batch(es) committed, "
            f"{len(self.batch_failures)} failed)"
        )


def default_table_name(dataset_id: str) -> str:
    return sanitize_identifier(f"dataset_{dataset_id}")


def to_storage_value(value: Any) -> str | None:
    """Render a decoded value for a loosely typed text column."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def _short_reason(exc: SQLAlchemyError) -> str:
    original = getattr(exc, "orig", None)
    return str(original or exc).splitlines()[0]


class BatchImporter:
    """Streams a dataset's rows into a new table in transactional batches."""

    def __init__(
        self,
        engine: Engine,
        registry: DatasetRegistry,
        *,
        default_batch_size: int = DEFAULT_BATCH_SIZE,
        max_json_element_chars: int | None = None,
    ) -> None:
        self.engine = engine
        self.registry = registry
        self.default_batch_size = default_batch_size
        self.max_json_element_chars = max_json_element_chars

    def run(
        self,
        dataset_id: str,
        table_name: str | None = None,
        batch_size: int | None = None,
        renew_lock: Callable[[], None] | None = None,
    ) -> ImportJob:
        """Import every row of ``dataset_id``.

        Raises NotFound for an unknown dataset and FormatError when the
        source fails to decode before its first row. Everything else ends
        up in the returned job: a table that cannot be created yields
        FAILED, a decode error after some rows yields PARTIALLY_SUCCEEDED,
        and failed batches are listed in ``batch_failures``.

        ``renew_lock`` is called before every batch write. When it raises
        ImportLockLost the import stops there, keeps what was committed,
        and ends PARTIALLY_SUCCEEDED.
        """
        record = self.registry.get(dataset_id)
        job = ImportJob(
            dataset_id=dataset_id,
            table_name=sanitize_identifier(table_name) if table_name else default_table_name(dataset_id),
            batch_size=batch_size or self.default_batch_size,
        )
        if job.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        log_memory_status(f"Import {dataset_id} start")
        tracker = CensusTracker()
        column_names = record.column_names
        table: Table | None = None
        mapping: list[tuple[str, str]] = []
        buffer: list[dict[str, str | None]] = []

        job.status = ImportStatus.READING
        stream = open_row_stream(
            record.source_path,
            record.source_format,
            max_json_element_chars=self.max_json_element_chars,
        )
        with closing(stream):
            try:
                for row in stream:
                    tracker.observe(row)
                    job.rows_read += 1
                    if table is None:
                        # Recorded census wins; otherwise the first row defines the schema
                        if column_names is None:
                            column_names = list(row.keys())
                        sanitized = sanitize_columns(column_names)
                        mapping = list(zip(column_names, sanitized))
                        job.columns = sanitized
                        table = self._create_table(job)
                        if table is None:
                            return job
                    buffer.append(self._project(row, mapping))
                    if len(buffer) >= job.batch_size:
                        if not self._renew_lock(job, renew_lock):
                            break
                        self._write_batch(job, table, buffer)
                        buffer = []
            except FormatError as exc:
                if job.rows_read == 0:
                    exc.subject = dataset_id
                    raise
                logger.warning(f"Import {dataset_id}: decoding stopped after {job.rows_read} rows: {exc}")
                job.decode_error = str(exc)

        job.status = ImportStatus.FINALIZING
        if buffer and table is not None and job.failure_reason is None:
            if self._renew_lock(job, renew_lock):
                self._write_batch(job, table, buffer)

        if job.decode_error is None and job.failure_reason is None:
            job.status = ImportStatus.SUCCEEDED
            if not record.has_census:
                self.registry.record_census(dataset_id, tracker.result().columns, tracker.row_count)
        else:
            job.status = ImportStatus.PARTIALLY_SUCCEEDED

        log_memory_status(f"Import {dataset_id} end")
        logger.info(f"Import {dataset_id} {job.summary()}")
        return job

    def _create_table(self, job: ImportJob) -> Table | None:
        """Create the destination table; on failure mark the job FAILED."""
        table = Table(
            job.table_name,
            MetaData(),
            Column(ROW_ID_COLUMN, Integer, primary_key=True, autoincrement=True),
            *(Column(name, Text) for name in job.columns),
        )
        try:
            with self.engine.begin() as conn:
                table.create(conn)
        except SQLAlchemyError as exc:
            logger.error(f"Could not create table '{job.table_name}': {exc}", exc_info=True)
            job.status = ImportStatus.FAILED
            job.failure_reason = f"could not create table '{job.table_name}': {_short_reason(exc)}"
            return None
        logger.info(f"Created table '{job.table_name}' with {len(job.columns)} column(s)")
        return table

    @staticmethod
    def _renew_lock(job: ImportJob, renew_lock: Callable[[], None] | None) -> bool:
        if renew_lock is None:
            return True
        try:
            renew_lock()
        except ImportLockLost as exc:
            logger.error(f"Import {job.dataset_id}: stopping before the next batch: {exc}")
            job.failure_reason = str(exc)
            return False
        return True

    @staticmethod
    def _project(row: Row, mapping: list[tuple[str, str]]) -> dict[str, str | None]:
        # Keys outside the schema are dropped; missing keys become NULL
        return {target: to_storage_value(row.get(source)) for source, target in mapping}

    def _write_batch(self, job: ImportJob, table: Table, rows: list[dict[str, str | None]]) -> None:
        job.status = ImportStatus.WRITING_BATCH
        batch_number = job.batches_committed + len(job.batch_failures) + 1
        insert = table.insert()
        try:
            with self.engine.begin() as conn:
                for values in rows:
                    conn.execute(insert, values)
        except SQLAlchemyError as exc:
            reason = _short_reason(exc)
            logger.warning(
                f"Import {job.dataset_id}: batch {batch_number} ({len(rows)} rows) rolled back: {reason}"
            )
            job.batch_failures.append(BatchFailure(batch_number, len(rows), reason))
        else:
            job.rows_inserted += len(rows)
            job.batches_committed += 1
            logger.debug(
                f"Import {job.dataset_id}: batch {batch_number} committed "
                f"({job.rows_inserted} rows so far)"
            )
        finally:
            job.status = ImportStatus.READING
