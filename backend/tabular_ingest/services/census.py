"""Single-pass column census and preview capture over a row stream."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any

from tabular_ingest.core.errors import FormatError
from tabular_ingest.decoders import Row

logger = logging.getLogger(__name__)

_BOOLEAN_STRINGS = {"true", "false"}
# Distinct values remembered per column before the count is reported as a floor
UNIQUE_TRACKING_LIMIT = 1000
# A column is categorical when its distinct values stay under this share of present values
CATEGORICAL_RATIO = 0.1


@dataclass(frozen=True)
class ColumnDescriptor:
    name: str
    type: str = "empty"
    missing_count: int = 0
    unique_count: int = 0
    # True once unique_count reached UNIQUE_TRACKING_LIMIT and stopped counting
    unique_capped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "missingCount": self.missing_count,
            "uniqueCount": self.unique_count,
            "uniqueCapped": self.unique_capped,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ColumnDescriptor":
        return cls(
            name=payload["name"],
            type=payload.get("type", "empty"),
            missing_count=payload.get("missingCount", 0),
            unique_count=payload.get("uniqueCount", 0),
            unique_capped=payload.get("uniqueCapped", False),
        )


class PreviewBuffer:
    """Keeps the first ``limit`` rows of a stream, verbatim."""

    def __init__(self, limit: int) -> None:
        self.limit = max(0, limit)
        self._rows: list[Row] = []

    def offer(self, row: Row) -> bool:
        if len(self._rows) >= self.limit:
            return False
        self._rows.append(row)
        return True

    def freeze(self) -> tuple[Row, ...]:
        return tuple(self._rows)


@dataclass
class CensusResult:
    columns: list[ColumnDescriptor] = field(default_factory=list)
    row_count: int = 0
    preview: tuple[Row, ...] = ()
    # Decode error that cut the pass short, if any
    error: FormatError | None = None

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    @property
    def complete(self) -> bool:
        return self.error is None


def classify_value(value: Any) -> str | None:
    """Return a coarse type tag for one value, or None when it is missing."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "numeric"
    if isinstance(value, (datetime, date, time)):
        return "date"
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lower() in _BOOLEAN_STRINGS:
            return "boolean"
        try:
            float(text)
            return "numeric"
        except ValueError:
            pass
        if len(text) >= 8:
            try:
                datetime.fromisoformat(text)
                return "date"
            except ValueError:
                pass
    return "text"


def _distinct_key(value: Any) -> Any:
    try:
        hash(value)
    except TypeError:
        # dict/list values from JSON sources
        return ("unhashable", repr(value))
    return (type(value).__name__, value)


class _ColumnTally:
    __slots__ = ("name", "kinds", "missing", "present", "distinct", "capped")

    def __init__(self, name: str) -> None:
        self.name = name
        self.kinds: set[str] = set()
        self.missing = 0
        self.present = 0
        self.distinct: set[Any] = set()
        self.capped = False

    def add(self, value: Any) -> None:
        kind = classify_value(value)
        if kind is None:
            self.missing += 1
            return
        self.kinds.add(kind)
        self.present += 1
        if not self.capped:
            self.distinct.add(_distinct_key(value))
            if len(self.distinct) >= UNIQUE_TRACKING_LIMIT:
                self.capped = True

    def describe(self) -> ColumnDescriptor:
        if not self.kinds:
            tag = "empty"
        elif len(self.kinds) == 1:
            tag = next(iter(self.kinds))
        else:
            tag = "mixed"
        unique = len(self.distinct)
        # Few repeated labels; numeric and boolean columns keep their own tag
        if (
            tag in ("text", "date", "mixed")
            and not self.capped
            and 1 < unique < self.present * CATEGORICAL_RATIO
        ):
            tag = "categorical"
        return ColumnDescriptor(
            name=self.name,
            type=tag,
            missing_count=self.missing,
            unique_count=unique,
            unique_capped=self.capped,
        )


class CensusTracker:
    """Accumulates a census incrementally as rows go past.

    The column list comes from the first row's keys only; keys first seen
    in later rows are not added, and keys a later row lacks count as
    missing values.
    """

    def __init__(self, preview_limit: int = 0) -> None:
        self.preview = PreviewBuffer(preview_limit)
        self.row_count = 0
        self._tallies: list[_ColumnTally] | None = None

    @property
    def column_names(self) -> list[str] | None:
        if self._tallies is None:
            return None
        return [tally.name for tally in self._tallies]

    def observe(self, row: Row) -> None:
        if self._tallies is None:
            self._tallies = [_ColumnTally(name) for name in row.keys()]
        for tally in self._tallies:
            tally.add(row.get(tally.name))
        self.preview.offer(row)
        self.row_count += 1

    def result(self, error: FormatError | None = None) -> CensusResult:
        return CensusResult(
            columns=[tally.describe() for tally in self._tallies or []],
            row_count=self.row_count,
            preview=self.preview.freeze(),
            error=error,
        )


def take_census(rows: Iterable[Row], preview_limit: int) -> CensusResult:
    """Consume ``rows`` once, counting rows and capturing the preview.

    A FormatError raised mid-stream ends the pass and is returned in
    ``error`` alongside everything counted before it.
    """
    tracker = CensusTracker(preview_limit)
    error: FormatError | None = None
    try:
        for row in rows:
            tracker.observe(row)
    except FormatError as exc:
        logger.warning(f"Decoding stopped after {tracker.row_count} row(s): {exc}")
        error = exc
    return tracker.result(error)
