"""Import request and result payloads."""

from pydantic import BaseModel, ConfigDict, Field


class ImportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    table_name: str | None = Field(
        None,
        alias="tableName",
        min_length=1,
        max_length=255,
        description="Destination table; sanitized before use. Defaults to dataset_<id>",
    )
    batch_size: int | None = Field(None, alias="batchSize", ge=1, le=10_000)


class BatchFailureOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    batch_number: int = Field(..., alias="batchNumber")
    rows: int
    reason: str


class ImportResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    table: str
    inserted: int
    status: str = Field(..., description="succeeded|partially_succeeded|failed")
    rows_read: int = Field(..., alias="rowsRead")
    batches_committed: int = Field(..., alias="batchesCommitted")
    failed_batches: list[BatchFailureOut] = Field(default_factory=list, alias="failedBatches")
    columns: list[str] = Field(default_factory=list)
    error: str | None = None
