"""Read endpoints over registered datasets."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from tabular_ingest.api.dependencies.db import get_app_settings, get_registry
from tabular_ingest.api.routers.helpers import (
    serialize_columns,
    serialize_summary,
    to_http_error,
)
from tabular_ingest.api.schemas.dataset import DatasetListItem, PreviewResponse, SummaryResponse
from tabular_ingest.core.config import Settings
from tabular_ingest.core.errors import IngestError
from tabular_ingest.services.dataset_ingest import read_preview
from tabular_ingest.services.registry import DatasetRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


def _registry_failure(action: str, exc: SQLAlchemyError, dataset_id: str | None = None) -> HTTPException:
    logger.error(f"Database error while trying to {action}: {exc}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "registry_error", "message": f"Failed to {action}", "dataset": dataset_id},
    )


@router.get(
    "/datasets",
    summary="List uploaded datasets",
    response_model=list[DatasetListItem],
)
def list_datasets(
    registry: DatasetRegistry = Depends(get_registry),
) -> list[DatasetListItem]:
    """Return every registered dataset, most recently uploaded first."""
    try:
        return [serialize_summary(item) for item in registry.list()]
    except SQLAlchemyError as exc:
        raise _registry_failure("fetch datasets", exc) from exc


@router.get(
    "/preview/{dataset_id}",
    summary="Re-read up to N rows from the stored source",
    response_model=PreviewResponse,
)
def preview_dataset(
    dataset_id: str,
    limit: int | None = Query(None, ge=1, description="Maximum number of rows to return"),
    registry: DatasetRegistry = Depends(get_registry),
    settings: Settings = Depends(get_app_settings),
) -> PreviewResponse:
    """Decode the stored file again rather than serving the upload-time cache,
    so callers may ask for more rows than were cached."""
    effective_limit = min(
        limit or settings.default_preview_request_limit,
        settings.max_preview_limit,
    )
    try:
        record = registry.get(dataset_id)
        preview = read_preview(record, effective_limit, settings)
    except IngestError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise _registry_failure("fetch dataset", exc, dataset_id) from exc

    return PreviewResponse(
        data=preview.rows,
        columns=serialize_columns(preview.columns),
        preview_rows=len(preview.rows),
        truncated=preview.truncated,
        warning=preview.warning,
    )


@router.get(
    "/summary/{dataset_id}",
    summary="Row/column census from stored metadata",
    response_model=SummaryResponse,
)
def dataset_summary(
    dataset_id: str,
    registry: DatasetRegistry = Depends(get_registry),
) -> SummaryResponse:
    """Serve the recorded census; the source file is not touched."""
    try:
        record = registry.get(dataset_id)
    except IngestError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise _registry_failure("fetch summary", exc, dataset_id) from exc

    return SummaryResponse(
        row_count=record.row_count,
        column_count=record.column_count,
        columns=serialize_columns(record.columns),
    )
