from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from tabular_ingest.core.errors import FormatError, UnsupportedFormat
from tabular_ingest.decoders import SourceFormat, detect_format, open_row_stream
from tabular_ingest.decoders.common import unique_labels
from tabular_ingest.decoders.json_array import iter_json_rows
from tests.fixtures.sources import SCENARIO_CSV, SCENARIO_JSON, build_workbook, write_text


def _drain(stream):
    """Collect rows until the stream ends or raises; return (rows, error)."""
    rows = []
    try:
        for row in stream:
            rows.append(row)
    except FormatError as exc:
        return rows, exc
    return rows, None


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("orders.csv", SourceFormat.DELIMITED),
        ("ORDERS.TSV", SourceFormat.DELIMITED),
        ("orders.json", SourceFormat.JSON),
        ("orders.xlsx", SourceFormat.SPREADSHEET),
        ("orders.xlsm", SourceFormat.SPREADSHEET),
    ],
)
def test_detect_format_by_extension(filename: str, expected: SourceFormat) -> None:
    assert detect_format(filename) is expected


@pytest.mark.parametrize("filename", ["notes.txt", "archive.xls", "no_extension", ""])
def test_detect_format_rejects_unknown_extensions(filename: str) -> None:
    with pytest.raises(UnsupportedFormat):
        detect_format(filename)


def test_unique_labels_fills_blanks_and_disambiguates_repeats() -> None:
    assert unique_labels(["id", None, "id", "  "]) == ["id", "column_2", "id_1", "column_4"]


def test_csv_rows_keep_values_as_text(tmp_path: Path) -> None:
    path = write_text(tmp_path / "data.csv", SCENARIO_CSV)

    rows = list(open_row_stream(path, SourceFormat.DELIMITED))

    assert rows == [{"a": "1", "b": "x"}, {"a": "2", "b": "y"}]


def test_csv_short_rows_are_padded_and_blank_lines_skipped(tmp_path: Path) -> None:
    path = write_text(tmp_path / "data.csv", "\n\na,b,c\n\n1,,\n2\n3,4,5,6\n")

    rows = list(open_row_stream(path, SourceFormat.DELIMITED))

    assert rows == [
        {"a": "1", "b": "", "c": ""},
        {"a": "2", "b": None, "c": None},
        {"a": "3", "b": "4", "c": "5"},
    ]


def test_csv_quoted_fields_may_span_lines(tmp_path: Path) -> None:
    path = write_text(tmp_path / "data.csv", 'name,note\nann,"line one\nline two"\nbob,"a, b"\n')

    rows = list(open_row_stream(path, SourceFormat.DELIMITED))

    assert rows == [
        {"name": "ann", "note": "line one\nline two"},
        {"name": "bob", "note": "a, b"},
    ]


def test_tsv_uses_tab_delimiter(tmp_path: Path) -> None:
    path = write_text(tmp_path / "data.tsv", "a\tb\n1\tx,y\n")

    assert list(open_row_stream(path, SourceFormat.DELIMITED)) == [{"a": "1", "b": "x,y"}]


def test_csv_unterminated_quote_fails_after_earlier_rows(tmp_path: Path) -> None:
    path = write_text(tmp_path / "data.csv", 'a,b\n1,x\n2,"oops\n')

    rows, error = _drain(open_row_stream(path, SourceFormat.DELIMITED))

    assert rows == [{"a": "1", "b": "x"}]
    assert error is not None
    assert error.format_name == "delimited"


def test_csv_invalid_encoding_is_a_format_error(tmp_path: Path) -> None:
    path = tmp_path / "data.csv"
    path.write_bytes(b"a,b\n1,\xff\xfe\n")

    rows, error = _drain(open_row_stream(path, SourceFormat.DELIMITED))

    assert rows == []
    assert error is not None


def test_empty_csv_yields_nothing(tmp_path: Path) -> None:
    path = write_text(tmp_path / "data.csv", "")

    assert list(open_row_stream(path, SourceFormat.DELIMITED)) == []


def test_json_rows_keep_their_own_keys(tmp_path: Path) -> None:
    path = write_text(tmp_path / "data.json", SCENARIO_JSON)

    rows = list(open_row_stream(path, SourceFormat.JSON))

    assert rows == [{"a": 1}, {"a": 2, "b": 3}]


def test_json_decodes_across_small_chunks(tmp_path: Path) -> None:
    document = '  [ {"text": "a, [tricky] } value", "n": 1.5},\n {"nested": {"x": [1, 2]}} ]  '
    path = write_text(tmp_path / "data.json", document)

    rows = list(iter_json_rows(path, chunk_size=3))

    assert rows == [{"text": "a, [tricky] } value", "n": 1.5}, {"nested": {"x": [1, 2]}}]


@pytest.mark.parametrize("document", ["", "   \n", "[]", " [ ] "])
def test_json_empty_documents_yield_nothing(tmp_path: Path, document: str) -> None:
    path = write_text(tmp_path / "data.json", document)

    assert list(iter_json_rows(path)) == []


def test_json_root_must_be_an_array(tmp_path: Path) -> None:
    path = write_text(tmp_path / "data.json", '{"a": 1}')

    rows, error = _drain(iter_json_rows(path))

    assert rows == []
    assert error is not None
    assert "not an array" in error.reason


def test_json_non_object_element_stops_after_earlier_rows(tmp_path: Path) -> None:
    path = write_text(tmp_path / "data.json", '[{"a": 1}, {"a": 2}, 7]')

    rows, error = _drain(iter_json_rows(path, chunk_size=4))

    assert rows == [{"a": 1}, {"a": 2}]
    assert error is not None
    assert "not an object" in error.reason


def test_json_truncated_document_fails_after_complete_elements(tmp_path: Path) -> None:
    path = write_text(tmp_path / "data.json", '[{"a": 1}, {"a": 2')

    rows, error = _drain(iter_json_rows(path))

    assert rows == [{"a": 1}]
    assert error is not None
    assert error.offset is not None


def test_json_trailing_content_is_rejected(tmp_path: Path) -> None:
    path = write_text(tmp_path / "data.json", '[{"a": 1}] extra')

    rows, error = _drain(iter_json_rows(path))

    assert rows == [{"a": 1}]
    assert error is not None


def test_json_element_larger_than_cap_is_rejected(tmp_path: Path) -> None:
    path = write_text(tmp_path / "data.json", '[{"a": "' + "x" * 200 + '"}]')

    rows, error = _drain(iter_json_rows(path, max_element_chars=50, chunk_size=16))

    assert rows == []
    assert error is not None


def test_spreadsheet_reads_first_sheet_with_header_row(tmp_path: Path) -> None:
    stamp = datetime(2024, 3, 1)
    path = build_workbook(
        tmp_path / "data.xlsx",
        ["name", "qty", "when"],
        [["widget", 3, stamp], ["gadget", None, None], ["short"]],
        extra_sheet=True,
    )

    rows = list(open_row_stream(path, SourceFormat.SPREADSHEET))

    assert rows == [
        {"name": "widget", "qty": 3, "when": stamp},
        {"name": "gadget", "qty": None, "when": None},
        {"name": "short", "qty": None, "when": None},
    ]


def test_spreadsheet_skips_empty_rows(tmp_path: Path) -> None:
    path = build_workbook(tmp_path / "data.xlsx", ["a"], [[1], [None], [2]])

    rows = list(open_row_stream(path, SourceFormat.SPREADSHEET))

    assert rows == [{"a": 1}, {"a": 2}]


def test_spreadsheet_that_is_not_a_workbook_is_a_format_error(tmp_path: Path) -> None:
    path = tmp_path / "data.xlsx"
    path.write_bytes(b"definitely not a zip archive")

    rows, error = _drain(open_row_stream(path, SourceFormat.SPREADSHEET))

    assert rows == []
    assert error is not None


def test_json_deeply_nested_element_is_a_format_error(tmp_path: Path) -> None:
    depth = 100_000
    path = write_text(tmp_path / "data.json", '[{"a": ' + "[" * depth + "]" * depth + "}]")

    rows, error = _drain(iter_json_rows(path))

    assert rows == []
    assert error is not None
    assert "nested too deeply" in error.reason


def test_json_large_element_spanning_many_chunks(tmp_path: Path) -> None:
    payload = "y" * 50_000
    path = write_text(tmp_path / "data.json", f'[{{"big": "{payload}"}}, {{"small": 1}}]')

    rows = list(iter_json_rows(path, chunk_size=8))

    assert rows == [{"big": payload}, {"small": 1}]
