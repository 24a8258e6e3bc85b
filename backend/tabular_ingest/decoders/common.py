"""Types and helpers shared by the per-format row decoders."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from pathlib import Path
from typing import Any

from tabular_ingest.core.errors import UnsupportedFormat

Row = dict[str, Any]


class SourceFormat(str, Enum):
    DELIMITED = "delimited"
    JSON = "json"
    SPREADSHEET = "spreadsheet"


# Extension -> (format, default delimiter)
SUPPORTED_EXTENSIONS: dict[str, tuple[SourceFormat, str | None]] = {
    ".csv": (SourceFormat.DELIMITED, ","),
    ".tsv": (SourceFormat.DELIMITED, "\t"),
    ".json": (SourceFormat.JSON, None),
    ".xlsx": (SourceFormat.SPREADSHEET, None),
    ".xlsm": (SourceFormat.SPREADSHEET, None),
}


def detect_format(filename: str | None) -> SourceFormat:
    """Resolve the format tag from a filename, before any byte is read."""
    suffix = Path(filename or "").suffix.lower()
    try:
        return SUPPORTED_EXTENSIONS[suffix][0]
    except KeyError:
        allowed = ", ".join(sorted(SUPPORTED_EXTENSIONS))
        raise UnsupportedFormat(
            f"Unsupported file type '{suffix or '(none)'}'. Allowed: {allowed}",
            subject=filename,
        ) from None


def default_delimiter(filename: str | None) -> str:
    suffix = Path(filename or "").suffix.lower()
    _, delimiter = SUPPORTED_EXTENSIONS.get(suffix, (SourceFormat.DELIMITED, ","))
    return delimiter or ","


def unique_labels(raw_labels: Iterable[Any]) -> list[str]:
    """Turn a header row into distinct, non-empty column labels.

    Blank labels become ``column_<position>`` and repeats get a numeric
    suffix, so every cell in a row maps to its own key.
    """
    labels: list[str] = []
    seen: set[str] = set()
    for position, raw in enumerate(raw_labels, start=1):
        label = "" if raw is None else str(raw).strip()
        if not label:
            label = f"column_{position}"
        candidate = label
        suffix = 1
        while candidate in seen:
            candidate = f"{label}_{suffix}"
            suffix += 1
        seen.add(candidate)
        labels.append(candidate)
    return labels


def zip_row(labels: list[str], values: Iterable[Any]) -> Row:
    """Map cell values onto labels positionally; short rows pad with None."""
    cells = list(values)
    return {
        label: cells[index] if index < len(cells) else None
        for index, label in enumerate(labels)
    }
