"""Streaming decoder for the first worksheet of an Excel workbook."""

from __future__ import annotations

import zipfile
from collections.abc import Iterator
from pathlib import Path

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from tabular_ingest.core.errors import FormatError
from tabular_ingest.decoders.common import Row, unique_labels, zip_row

FORMAT_NAME = "spreadsheet"


def _is_empty(values: tuple | None) -> bool:
    return not values or all(value is None for value in values)


def iter_spreadsheet_rows(path: Path) -> Iterator[Row]:
    """Yield rows of the first sheet keyed by its first non-empty row.

    The workbook is opened read-only so rows are streamed from the archive
    instead of being loaded as a whole. Data rows shorter than the header
    are padded with None; cells past the header width are ignored.
    """
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except FileNotFoundError as exc:
        raise FormatError(FORMAT_NAME, f"source file not found: {path.name}") from exc
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, SyntaxError) as exc:
        raise FormatError(FORMAT_NAME, f"unreadable workbook: {exc}") from exc
    except OSError as exc:
        raise FormatError(FORMAT_NAME, f"unreadable source: {exc}") from exc

    try:
        if not workbook.worksheets:
            raise FormatError(FORMAT_NAME, "workbook contains no sheets")
        sheet = workbook.worksheets[0]
        labels: list[str] | None = None
        line = 0
        try:
            for line, values in enumerate(sheet.iter_rows(values_only=True), start=1):
                if _is_empty(values):
                    continue
                if labels is None:
                    labels = unique_labels(values)
                    continue
                yield zip_row(labels, values)
        # SyntaxError covers XML parse errors from the sheet parts
        except (zipfile.BadZipFile, KeyError, ValueError, SyntaxError, OSError) as exc:
            raise FormatError(FORMAT_NAME, f"corrupt worksheet data: {exc}", line=line + 1) from exc
    finally:
        workbook.close()
