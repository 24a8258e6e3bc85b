"""Response payloads for dataset uploads, listings, previews and summaries."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    """Serializes with the camelCase keys the workbench UI reads."""

    model_config = ConfigDict(populate_by_name=True)


class ColumnDescriptorOut(CamelModel):
    name: str
    type: str = Field(..., description="Coarse tag: numeric|boolean|date|categorical|text|mixed|empty")
    missing_count: int = Field(0, alias="missingCount")
    unique_count: int = Field(0, alias="uniqueCount")
    unique_capped: bool = Field(
        False, alias="uniqueCapped", description="uniqueCount is a lower bound"
    )


class DatasetListItem(CamelModel):
    id: str
    name: str
    size_bytes: int = Field(..., alias="sizeBytes")
    uploaded_at: datetime = Field(..., alias="uploadedAt")
    row_count: int | None = Field(None, alias="rowCount")
    column_count: int | None = Field(None, alias="columnCount")


class UploadResponse(DatasetListItem):
    data: list[dict[str, Any]] = Field(default_factory=list, description="Preview rows")
    columns: list[ColumnDescriptorOut] = Field(default_factory=list)
    is_preview: bool = Field(True, alias="isPreview")
    warning: str | None = Field(None, description="Decode error that cut the scan short")


class PreviewResponse(CamelModel):
    data: list[dict[str, Any]]
    columns: list[ColumnDescriptorOut]
    preview_rows: int = Field(..., alias="previewRows")
    truncated: bool
    warning: str | None = None


class SummaryResponse(CamelModel):
    row_count: int | None = Field(None, alias="rowCount")
    column_count: int | None = Field(None, alias="columnCount")
    columns: list[ColumnDescriptorOut] = Field(default_factory=list)
