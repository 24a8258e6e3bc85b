"""Endpoint materializing a dataset into a relational table."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from tabular_ingest.api.dependencies.db import get_import_locks, get_importer, get_registry
from tabular_ingest.api.routers.helpers import serialize_import, to_http_error
from tabular_ingest.api.schemas.imports import ImportRequest, ImportResult
from tabular_ingest.core.errors import IngestError, PartialImportFailure
from tabular_ingest.services.batch_importer import BatchImporter, default_table_name
from tabular_ingest.services.import_locks import ImportLocks
from tabular_ingest.services.registry import DatasetRegistry
from tabular_ingest.utils.identifiers import sanitize_identifier

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/import/{dataset_id}",
    summary="Import the full dataset into a table",
    response_model=ImportResult,
    responses={
        404: {"description": "Dataset not found"},
        409: {"description": "An import into the same table is already running"},
        500: {"model": ImportResult, "description": "Import failed or only partially completed"},
    },
)
def import_dataset(
    dataset_id: str,
    payload: ImportRequest | None = Body(None),
    registry: DatasetRegistry = Depends(get_registry),
    importer: BatchImporter = Depends(get_importer),
    locks: ImportLocks = Depends(get_import_locks),
) -> JSONResponse:
    """Stream every row into ``tableName`` in transactional batches.

    Batches that fail are rolled back individually and the import goes on;
    when anything was lost the response is a 500 that still reports how
    many rows were committed.
    """
    payload = payload or ImportRequest()
    try:
        # Resolve the id first so an unknown dataset is a 404, not a lock
        registry.get(dataset_id)
        table_name = (
            sanitize_identifier(payload.table_name)
            if payload.table_name
            else default_table_name(dataset_id)
        )
        with locks.hold(table_name) as lease:
            job = importer.run(
                dataset_id,
                table_name=table_name,
                batch_size=payload.batch_size,
                renew_lock=lease.renew,
            )
        result = serialize_import(job)
        if not job.fully_succeeded:
            raise PartialImportFailure(
                result.error or "Import did not complete",
                rows_inserted=job.rows_inserted,
                subject=dataset_id,
            )
    except PartialImportFailure as exc:
        logger.warning(f"Import of {dataset_id} incomplete: {exc} ({exc.rows_inserted} rows committed)")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={**result.model_dump(by_alias=True), "dataset": exc.subject, "kind": exc.kind},
        )
    except IngestError as exc:
        logger.warning(f"Import of {dataset_id} rejected: {exc}")
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        logger.error(f"Database error importing {dataset_id}: {exc}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "import_error", "message": "Import failed", "dataset": dataset_id},
        ) from exc

    return JSONResponse(status_code=status.HTTP_200_OK, content=result.model_dump(by_alias=True))
