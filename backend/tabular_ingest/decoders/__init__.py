"""Format-specific row decoders behind a single entry point.

Each decoder is a generator function producing row dicts lazily; a stream
is consumed once, and reading the source again means calling
:func:`open_row_stream` again.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from functools import partial
from pathlib import Path

from tabular_ingest.decoders.common import (
    SUPPORTED_EXTENSIONS,
    Row,
    SourceFormat,
    default_delimiter,
    detect_format,
)
from tabular_ingest.decoders.delimited import iter_delimited_rows
from tabular_ingest.decoders.json_array import iter_json_rows
from tabular_ingest.decoders.spreadsheet import iter_spreadsheet_rows

__all__ = [
    "Row",
    "SUPPORTED_EXTENSIONS",
    "SourceFormat",
    "default_delimiter",
    "detect_format",
    "open_row_stream",
]


def open_row_stream(
    path: str | Path,
    source_format: SourceFormat | str,
    *,
    delimiter: str | None = None,
    max_json_element_chars: int | None = None,
) -> Iterator[Row]:
    """Return a fresh row iterator over ``path`` for the given format tag."""
    path = Path(path)
    source_format = SourceFormat(source_format)
    decoders: dict[SourceFormat, Callable[[], Iterator[Row]]] = {
        SourceFormat.DELIMITED: partial(
            iter_delimited_rows,
            path,
            delimiter=delimiter or default_delimiter(path.name),
        ),
        SourceFormat.JSON: partial(
            iter_json_rows,
            path,
            **({"max_element_chars": max_json_element_chars} if max_json_element_chars else {}),
        ),
        SourceFormat.SPREADSHEET: partial(iter_spreadsheet_rows, path),
    }
    return decoders[source_format]()
