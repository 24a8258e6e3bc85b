"""Shared helpers for shaping dataset responses and error bodies."""
from __future__ import annotations

from collections.abc import Iterable

from fastapi import HTTPException, status

from tabular_ingest.api.schemas.dataset import ColumnDescriptorOut, DatasetListItem
from tabular_ingest.api.schemas.imports import BatchFailureOut, ImportResult
from tabular_ingest.core.errors import (
    FormatError,
    ImportInProgress,
    IngestError,
    NotFound,
    RegistryConflict,
    UnsupportedFormat,
    UploadTooLarge,
)
from tabular_ingest.services.batch_importer import ImportJob
from tabular_ingest.services.census import ColumnDescriptor
from tabular_ingest.services.registry import DatasetRecord, DatasetSummary

_STATUS_BY_ERROR: dict[type[IngestError], int] = {
    UnsupportedFormat: status.HTTP_400_BAD_REQUEST,
    UploadTooLarge: 413,
    FormatError: 422,
    NotFound: status.HTTP_404_NOT_FOUND,
    RegistryConflict: status.HTTP_409_CONFLICT,
    ImportInProgress: status.HTTP_409_CONFLICT,
}


def to_http_error(exc: IngestError) -> HTTPException:
    """Translate a domain error into an HTTPException with a concise detail."""
    code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=code, detail=exc.to_detail())


def serialize_columns(columns: Iterable[ColumnDescriptor] | None) -> list[ColumnDescriptorOut]:
    return [
        ColumnDescriptorOut(
            name=column.name,
            type=column.type,
            missing_count=column.missing_count,
            unique_count=column.unique_count,
            unique_capped=column.unique_capped,
        )
        for column in columns or ()
    ]


def serialize_summary(item: DatasetRecord | DatasetSummary) -> DatasetListItem:
    return DatasetListItem(
        id=item.id,
        name=item.name,
        size_bytes=item.size_bytes,
        uploaded_at=item.uploaded_at,
        row_count=item.row_count,
        column_count=item.column_count,
    )


def serialize_import(job: ImportJob) -> ImportResult:
    error = job.failure_reason or job.decode_error
    if error is None and job.batch_failures:
        error = f"{len(job.batch_failures)} batch(es) failed to commit ({job.rows_failed} rows)"
    return ImportResult(
        table=job.table_name,
        inserted=job.rows_inserted,
        status=job.status.value,
        rows_read=job.rows_read,
        batches_committed=job.batches_committed,
        failed_batches=[
            BatchFailureOut(batch_number=f.batch_number, rows=f.rows, reason=f.reason)
            for f in job.batch_failures
        ],
        columns=job.columns,
        error=error,
    )
