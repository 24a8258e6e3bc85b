"""Incremental decoder for a JSON document holding one array of objects."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import TextIO

from tabular_ingest.core.errors import FormatError
from tabular_ingest.decoders.common import Row

FORMAT_NAME = "json"
CHUNK_SIZE = 64 * 1024
_WHITESPACE = " \t\r\n"


class _TextWindow:
    """Sliding window over a text handle.

    Holds only the unparsed tail of the document; ``base`` is the number of
    characters already discarded so error offsets stay absolute.
    """

    def __init__(self, handle: TextIO, chunk_size: int) -> None:
        self.handle = handle
        self.chunk_size = chunk_size
        self.buffer = ""
        self.base = 0
        self.eof = False

    def fill(self, size: int | None = None) -> bool:
        if self.eof:
            return False
        data = self.handle.read(size or self.chunk_size)
        if not data:
            self.eof = True
            return False
        self.buffer += data
        return True

    def char_at(self, pos: int) -> str:
        """Return the character at ``pos`` or "" at end of document."""
        while pos >= len(self.buffer):
            if not self.fill():
                return ""
        return self.buffer[pos]

    def skip_whitespace(self, pos: int) -> int:
        while True:
            ch = self.char_at(pos)
            if ch == "" or ch not in _WHITESPACE:
                return pos
            pos += 1

    def discard(self, pos: int) -> None:
        self.base += pos
        self.buffer = self.buffer[pos:]

    def offset(self, pos: int) -> int:
        return self.base + pos

    def decode_object(self, decoder: json.JSONDecoder, pos: int, max_chars: int) -> tuple[Row, int]:
        while True:
            try:
                return decoder.raw_decode(self.buffer, pos)
            except RecursionError as exc:
                raise FormatError(
                    FORMAT_NAME,
                    "element nested too deeply",
                    offset=self.offset(pos),
                ) from exc
            except json.JSONDecodeError as exc:
                # Either the element is incomplete in the buffer or it is malformed
                if self.eof:
                    raise FormatError(
                        FORMAT_NAME,
                        f"malformed or truncated object: {exc.msg}",
                        offset=self.offset(exc.pos),
                    ) from exc
                if len(self.buffer) - pos > max_chars:
                    raise FormatError(
                        FORMAT_NAME,
                        f"array element larger than {max_chars} characters or malformed",
                        offset=self.offset(pos),
                    ) from exc
                # Read at least as much as is pending so each element is re-parsed
                # a logarithmic number of times
                self.fill(max(self.chunk_size, len(self.buffer) - pos))


def iter_json_rows(
    path: Path,
    *,
    encoding: str = "utf-8-sig",
    max_element_chars: int = 16 * 1024 * 1024,
    chunk_size: int = CHUNK_SIZE,
) -> Iterator[Row]:
    """Yield each object of a top-level JSON array without loading the array.

    A whitespace-only document is treated as an empty source. Keys may
    differ from one object to the next; values are returned as parsed.
    """
    decoder = json.JSONDecoder()
    try:
        with path.open("r", encoding=encoding) as handle:
            window = _TextWindow(handle, chunk_size)
            pos = window.skip_whitespace(0)
            first = window.char_at(pos)
            if first == "":
                return
            if first != "[":
                raise FormatError(
                    FORMAT_NAME,
                    "top-level value is not an array",
                    offset=window.offset(pos),
                )
            pos += 1
            index = 0
            while True:
                pos = window.skip_whitespace(pos)
                ch = window.char_at(pos)
                if ch == "]":
                    pos += 1
                    break
                if index > 0 and ch == ",":
                    pos = window.skip_whitespace(pos + 1)
                    ch = window.char_at(pos)
                elif index > 0 and ch != "":
                    raise FormatError(
                        FORMAT_NAME,
                        "expected ',' or ']' between array elements",
                        offset=window.offset(pos),
                    )
                if ch == "":
                    raise FormatError(
                        FORMAT_NAME,
                        "unexpected end of document inside the array",
                        offset=window.offset(pos),
                    )
                if ch != "{":
                    raise FormatError(
                        FORMAT_NAME,
                        f"array element {index} is not an object",
                        offset=window.offset(pos),
                    )
                element, pos = window.decode_object(decoder, pos, max_element_chars)
                yield element
                index += 1
                window.discard(pos)
                pos = 0

            pos = window.skip_whitespace(pos)
            if window.char_at(pos) != "":
                raise FormatError(
                    FORMAT_NAME,
                    "unexpected data after the top-level array",
                    offset=window.offset(pos),
                )
    except FileNotFoundError as exc:
        raise FormatError(FORMAT_NAME, f"source file not found: {path.name}") from exc
    except UnicodeDecodeError as exc:
        raise FormatError(FORMAT_NAME, f"file encoding error: {exc.reason}") from exc
    except OSError as exc:
        raise FormatError(FORMAT_NAME, f"unreadable source: {exc}") from exc
