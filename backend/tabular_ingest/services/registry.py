"""Dataset registry: the single source of truth for dataset metadata."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from tabular_ingest.core.errors import NotFound, RegistryConflict
from tabular_ingest.db.models.dataset import Dataset
from tabular_ingest.db.session import session_scope
from tabular_ingest.decoders import Row, SourceFormat
from tabular_ingest.services.census import ColumnDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatasetSummary:
    id: str
    name: str
    size_bytes: int
    uploaded_at: datetime
    row_count: int | None
    column_count: int | None


@dataclass(frozen=True)
class DatasetRecord:
    """Detached snapshot of a registry row."""

    id: str
    name: str
    source_path: str
    source_format: SourceFormat
    size_bytes: int
    uploaded_at: datetime
    row_count: int | None = None
    column_count: int | None = None
    columns: tuple[ColumnDescriptor, ...] | None = None
    preview: tuple[Row, ...] = field(default_factory=tuple)
    scan_error: str | None = None

    @property
    def has_census(self) -> bool:
        return self.row_count is not None

    @property
    def column_names(self) -> list[str] | None:
        if self.columns is None:
            return None
        return [column.name for column in self.columns]


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _to_record(row: Dataset) -> DatasetRecord:
    columns = None
    if row.columns is not None:
        columns = tuple(ColumnDescriptor.from_dict(item) for item in row.columns)
    return DatasetRecord(
        id=row.id,
        name=row.name,
        source_path=row.source_path,
        source_format=SourceFormat(row.source_format),
        size_bytes=row.size_bytes,
        uploaded_at=_as_utc(row.uploaded_at),
        row_count=row.row_count,
        column_count=row.column_count,
        columns=columns,
        preview=tuple(row.preview or ()),
        scan_error=row.scan_error,
    )


class DatasetRegistry:
    """Owns Dataset Records and their cached previews.

    One instance is built at application start-up and handed to the
    routers and the importer; every call runs in its own short transaction.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def create(
        self,
        name: str,
        source_path: str,
        source_format: SourceFormat | str,
        size_bytes: int,
        *,
        preview: Sequence[Row] = (),
        scan_error: str | None = None,
    ) -> str:
        """Register a staged source and return its fresh identifier."""
        with session_scope(self.session_factory) as session:
            dataset = Dataset(
                name=name,
                source_path=source_path,
                source_format=SourceFormat(source_format).value,
                size_bytes=size_bytes,
                preview=list(preview),
                scan_error=scan_error,
                uploaded_at=datetime.now(timezone.utc),
            )
            session.add(dataset)
            session.flush()
            dataset_id = dataset.id
        logger.info(f"Registered dataset {dataset_id} ({name}, {size_bytes} bytes)")
        return dataset_id

    def record_census(
        self,
        dataset_id: str,
        columns: Sequence[ColumnDescriptor],
        row_count: int,
    ) -> bool:
        """Set the census once. Returns True when this call wrote it.

        Re-recording identical values is a no-op; different values raise
        RegistryConflict instead of overwriting.
        """
        payload: list[dict[str, Any]] = [column.to_dict() for column in columns]
        with session_scope(self.session_factory) as session:
            # Conditional update keeps concurrent writers from both "winning"
            result = session.execute(
                update(Dataset)
                .where(Dataset.id == dataset_id, Dataset.row_count.is_(None))
                .values(row_count=row_count, column_count=len(payload), columns=payload)
            )
            if result.rowcount == 1:
                logger.info(
                    f"Recorded census for dataset {dataset_id}: "
                    f"{row_count} rows, {len(payload)} columns"
                )
                return True

            existing = session.get(Dataset, dataset_id)
            if existing is None:
                raise NotFound(f"Dataset {dataset_id} not found", subject=dataset_id)

            if existing.row_count != row_count or (existing.columns or []) != payload:
                raise RegistryConflict(
                    f"Census for dataset {dataset_id} already recorded as "
                    f"{existing.row_count} rows x {existing.column_count} columns; "
                    f"refusing to replace it with {row_count} rows x {len(payload)} columns",
                    subject=dataset_id,
                )
            return False

    def get(self, dataset_id: str) -> DatasetRecord:
        with session_scope(self.session_factory) as session:
            row = session.get(Dataset, dataset_id)
            if row is None:
                raise NotFound(f"Dataset {dataset_id} not found", subject=dataset_id)
            return _to_record(row)

    def list(self) -> list[DatasetSummary]:
        """Return dataset summaries, most recently uploaded first."""
        with session_scope(self.session_factory) as session:
            rows = session.scalars(
                select(Dataset).order_by(Dataset.uploaded_at.desc(), Dataset.id.desc())
            ).all()
            return [
                DatasetSummary(
                    id=row.id,
                    name=row.name,
                    size_bytes=row.size_bytes,
                    uploaded_at=_as_utc(row.uploaded_at),
                    row_count=row.row_count,
                    column_count=row.column_count,
                )
                for row in rows
            ]
