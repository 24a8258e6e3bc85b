from __future__ import annotations

from collections.abc import Iterator
from datetime import date

import pytest

from tabular_ingest.core.errors import FormatError
from tabular_ingest.decoders import Row
from tabular_ingest.services.census import (
    UNIQUE_TRACKING_LIMIT,
    ColumnDescriptor,
    PreviewBuffer,
    classify_value,
    take_census,
)


def _rows_then_error(rows: list[Row]) -> Iterator[Row]:
    yield from rows
    raise FormatError("json", "array element 2 is not an object", offset=40)


def test_census_takes_columns_from_first_row_only() -> None:
    census = take_census([{"a": 1}, {"a": 2, "b": 3}], preview_limit=5)

    assert census.column_names == ["a"]
    assert census.row_count == 2
    assert census.complete


def test_keys_missing_from_later_rows_count_as_missing() -> None:
    census = take_census([{"a": "1", "b": "x"}, {"a": "2"}, {"a": "", "b": "y"}], preview_limit=0)

    by_name = {column.name: column for column in census.columns}
    assert by_name["a"].missing_count == 1
    assert by_name["b"].missing_count == 1


def test_preview_is_bounded_by_limit() -> None:
    rows = [{"n": index} for index in range(8)]

    census = take_census(rows, preview_limit=5)

    assert census.row_count == 8
    assert list(census.preview) == rows[:5]


def test_preview_shorter_than_limit_holds_every_row() -> None:
    rows = [{"n": 1}, {"n": 2}]

    assert list(take_census(rows, preview_limit=5).preview) == rows


def test_empty_stream_has_no_columns() -> None:
    census = take_census([], preview_limit=5)

    assert census.columns == []
    assert census.row_count == 0
    assert census.preview == ()


def test_decode_error_keeps_rows_counted_before_it() -> None:
    census = take_census(_rows_then_error([{"a": 1}, {"a": 2}]), preview_limit=1)

    assert census.row_count == 2
    assert census.preview == ({"a": 1},)
    assert not census.complete
    assert isinstance(census.error, FormatError)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, None),
        ("   ", None),
        (3, "numeric"),
        ("4.5", "numeric"),
        (True, "boolean"),
        ("FALSE", "boolean"),
        (date(2024, 1, 2), "date"),
        ("2024-01-02", "date"),
        ("widget", "text"),
        ({"nested": 1}, "text"),
    ],
)
def test_classify_value(value, expected) -> None:
    assert classify_value(value) == expected


def test_column_types_summarize_observed_values() -> None:
    rows = [
        {"qty": "1", "label": "x", "mixed": "1", "blank": None},
        {"qty": "2", "label": "y", "mixed": "abc", "blank": ""},
    ]

    census = take_census(rows, preview_limit=0)

    assert [(column.name, column.type) for column in census.columns] == [
        ("qty", "numeric"),
        ("label", "text"),
        ("mixed", "mixed"),
        ("blank", "empty"),
    ]


def test_column_descriptor_round_trips_through_stored_form() -> None:
    descriptor = ColumnDescriptor(name="qty", type="numeric", missing_count=2, unique_count=7)

    assert descriptor.to_dict() == {
        "name": "qty",
        "type": "numeric",
        "missingCount": 2,
        "uniqueCount": 7,
        "uniqueCapped": False,
    }
    assert ColumnDescriptor.from_dict(descriptor.to_dict()) == descriptor


def test_preview_buffer_refuses_rows_past_limit() -> None:
    buffer = PreviewBuffer(1)

    assert buffer.offer({"a": 1}) is True
    assert buffer.offer({"a": 2}) is False
    assert buffer.freeze() == ({"a": 1},)


def test_unique_counts_ignore_missing_values() -> None:
    rows = [{"city": "Oslo"}, {"city": "Lima"}, {"city": "Oslo"}, {"city": ""}, {}]

    (column,) = take_census(rows, preview_limit=0).columns

    assert column.unique_count == 2
    assert column.missing_count == 2
    assert column.unique_capped is False


def test_repeated_labels_make_a_column_categorical() -> None:
    rows = [{"color": "red" if index % 2 else "blue", "qty": str(index % 3)} for index in range(40)]

    by_name = {column.name: column for column in take_census(rows, preview_limit=0).columns}

    assert by_name["color"].type == "categorical"
    assert by_name["color"].unique_count == 2
    # Numeric columns keep their tag however repetitive
    assert by_name["qty"].type == "numeric"


def test_single_repeated_value_is_not_categorical() -> None:
    rows = [{"status": "ok"} for _ in range(50)]

    (column,) = take_census(rows, preview_limit=0).columns

    assert column.type == "text"
    assert column.unique_count == 1


def test_unique_tracking_stops_at_limit() -> None:
    rows = [{"id": f"key-{index}"} for index in range(UNIQUE_TRACKING_LIMIT + 500)]

    (column,) = take_census(rows, preview_limit=0).columns

    assert column.unique_count == UNIQUE_TRACKING_LIMIT
    assert column.unique_capped is True
    assert column.type == "text"


def test_unhashable_values_are_counted_by_content() -> None:
    rows = [{"tags": ["a", "b"]}, {"tags": ["a", "b"]}, {"tags": {"x": 1}}]

    (column,) = take_census(rows, preview_limit=0).columns

    assert column.unique_count == 2
