"""Streaming decoder for delimited text (CSV/TSV)."""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterator
from pathlib import Path

from tabular_ingest.core.errors import FormatError
from tabular_ingest.decoders.common import Row, unique_labels

logger = logging.getLogger(__name__)

FORMAT_NAME = "delimited"


def _is_blank(fields: list[str]) -> bool:
    return not fields or (len(fields) == 1 and not fields[0].strip())


def iter_delimited_rows(
    path: Path,
    *,
    delimiter: str = ",",
    encoding: str = "utf-8-sig",
) -> Iterator[Row]:
    """Yield one dict per data line, keyed by the header labels.

    The first non-blank line is the header. Fields are kept as raw strings;
    a line shorter than the header maps the missing positions to None and
    fields past the header width are dropped.
    """
    reader = None
    try:
        with path.open("r", encoding=encoding, newline="") as handle:
            reader = csv.reader(handle, delimiter=delimiter, strict=True)
            labels: list[str] | None = None
            dropped_extra = 0
            for fields in reader:
                if _is_blank(fields):
                    continue
                if labels is None:
                    labels = unique_labels(fields)
                    continue
                if len(fields) > len(labels):
                    dropped_extra += 1
                row: Row = {}
                for index, label in enumerate(labels):
                    row[label] = fields[index] if index < len(fields) else None
                yield row
            if dropped_extra:
                logger.debug(
                    f"Dropped fields beyond the header width on {dropped_extra} line(s) of {path.name}"
                )
    except FileNotFoundError as exc:
        raise FormatError(FORMAT_NAME, f"source file not found: {path.name}") from exc
    except PermissionError as exc:
        raise FormatError(FORMAT_NAME, f"permission denied reading {path.name}") from exc
    except UnicodeDecodeError as exc:
        line = reader.line_num + 1 if reader is not None else None
        raise FormatError(FORMAT_NAME, f"file encoding error: {exc.reason}", line=line) from exc
    except csv.Error as exc:
        line = reader.line_num if reader is not None else None
        raise FormatError(FORMAT_NAME, f"parsing error: {exc}", line=line) from exc
    except OSError as exc:
        raise FormatError(FORMAT_NAME, f"unreadable source: {exc}") from exc
