"""Upload scanning and on-demand previews of stored sources."""

from __future__ import annotations

import logging
from contextlib import closing
from dataclasses import dataclass
from itertools import islice
from pathlib import Path
from typing import Any, BinaryIO

from fastapi.encoders import jsonable_encoder

from tabular_ingest.core.config import Settings
from tabular_ingest.core.errors import NotFound
from tabular_ingest.decoders import detect_format, open_row_stream
from tabular_ingest.services.census import CensusResult, ColumnDescriptor, take_census
from tabular_ingest.services.registry import DatasetRecord, DatasetRegistry
from tabular_ingest.storage.file_storage import delete_upload, save_upload
from tabular_ingest.utils.memory_monitor import log_memory_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadOutcome:
    record: DatasetRecord
    census: CensusResult

    @property
    def warning(self) -> str | None:
        return str(self.census.error) if self.census.error else None


@dataclass(frozen=True)
class SourcePreview:
    rows: list[dict[str, Any]]
    columns: list[ColumnDescriptor]
    truncated: bool
    warning: str | None = None


def ingest_upload(
    file_obj: BinaryIO,
    filename: str,
    registry: DatasetRegistry,
    settings: Settings,
) -> UploadOutcome:
    """Stage an upload, scan it once, and register it.

    The scan produces the census and the cached preview in the same pass.
    A source that fails before its first row is rejected and its staged
    file removed; a failure after some rows keeps the dataset, reports the
    rows read so far, and leaves the census unrecorded.
    """
    source_format = detect_format(filename)
    path, size = save_upload(
        file_obj, filename, settings.uploads_dir, max_bytes=settings.max_upload_bytes
    )

    try:
        log_memory_status(f"Scan {filename} start")
        stream = open_row_stream(
            path, source_format, max_json_element_chars=settings.max_json_element_bytes
        )
        with closing(stream):
            census = take_census(stream, settings.preview_limit)
        log_memory_status(f"Scan {filename} end")

        if census.error is not None and census.row_count == 0:
            census.error.subject = filename
            raise census.error

        dataset_id = registry.create(
            filename,
            str(path),
            source_format,
            size,
            preview=jsonable_encoder(list(census.preview)),
            scan_error=str(census.error) if census.error else None,
        )
    except Exception:
        # Nothing registered yet, so the staged file would be orphaned
        delete_upload(path)
        raise

    if census.complete:
        registry.record_census(dataset_id, census.columns, census.row_count)
    logger.info(
        f"Processed upload {filename} as {dataset_id}: "
        f"{census.row_count} rows, {len(census.columns)} columns"
    )
    return UploadOutcome(record=registry.get(dataset_id), census=census)


def read_preview(record: DatasetRecord, limit: int, settings: Settings) -> SourcePreview:
    """Decode up to ``limit`` rows straight from the stored source."""
    if not Path(record.source_path).exists():
        raise NotFound("Dataset file not found on disk", subject=record.id)

    stream = open_row_stream(
        record.source_path,
        record.source_format,
        max_json_element_chars=settings.max_json_element_bytes,
    )
    with closing(stream):
        # One extra row tells us whether the source goes on
        census = take_census(islice(stream, limit + 1), limit)

    if census.error is not None and census.row_count == 0:
        census.error.subject = record.id
        raise census.error

    columns = list(record.columns) if record.columns is not None else census.columns
    return SourcePreview(
        rows=list(census.preview),
        columns=columns,
        truncated=census.row_count > limit,
        warning=str(census.error) if census.error else None,
    )
