"""Endpoint accepting dataset uploads."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.exc import SQLAlchemyError

from tabular_ingest.api.dependencies.db import get_app_settings, get_registry
from tabular_ingest.api.routers.helpers import serialize_columns, to_http_error
from tabular_ingest.api.schemas.dataset import UploadResponse
from tabular_ingest.core.config import Settings
from tabular_ingest.core.errors import IngestError, UploadTooLarge
from tabular_ingest.services.dataset_ingest import ingest_upload
from tabular_ingest.services.registry import DatasetRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/upload",
    summary="Upload a CSV, JSON or Excel dataset",
    response_model=UploadResponse,
)
def upload_dataset(
    file: UploadFile = File(...),
    registry: DatasetRegistry = Depends(get_registry),
    settings: Settings = Depends(get_app_settings),
) -> UploadResponse:
    """Stage the file, scan it once for census and preview, and register it."""
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "missing_file", "message": "Filename is required", "dataset": None},
        )

    logger.info(f"Processing upload: {file.filename}")
    try:
        # Reject early when the client declared the size
        if file.size is not None and file.size > settings.max_upload_bytes:
            raise UploadTooLarge(
                f"File too large. Maximum size is {settings.max_upload_bytes // (1024 * 1024)}MB.",
                subject=file.filename,
            )
        outcome = ingest_upload(file.file, file.filename, registry, settings)
    except IngestError as exc:
        logger.warning(f"Rejected upload {file.filename}: {exc}")
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        logger.error(f"Database error registering {file.filename}: {exc}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "registry_error",
                "message": "Failed to save dataset metadata",
                "dataset": file.filename,
            },
        ) from exc
    finally:
        file.file.close()

    record, census = outcome.record, outcome.census
    return UploadResponse(
        id=record.id,
        name=record.name,
        size_bytes=record.size_bytes,
        uploaded_at=record.uploaded_at,
        row_count=census.row_count,
        column_count=len(census.columns),
        data=list(record.preview),
        columns=serialize_columns(census.columns),
        is_preview=True,
        warning=outcome.warning,
    )
