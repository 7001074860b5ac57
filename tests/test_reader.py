"""Tab-delimited feed reader tests."""

from __future__ import annotations

from dataclasses import fields

import pytest
from conftest import feed_row

from carzo_feed.errors import ParseError
from carzo_feed.ingestion.reader import (
    _COLUMN_LOOKUP,
    FEED_COLUMNS,
    RawFeedRecord,
    iter_feed_records,
    record_from_cells,
)


def _write(tmp_path, text, name="feed.tsv", encoding="utf-8"):
    path = tmp_path / name
    path.write_bytes(text.encode(encoding))
    return path


def test_column_map_covers_every_record_field():
    assert sorted(_COLUMN_LOOKUP.values()) == sorted(f.name for f in fields(RawFeedRecord))
    assert len(FEED_COLUMNS) == len(fields(RawFeedRecord))


def test_reads_rows_as_raw_strings(write_feed):
    path = write_feed([feed_row("1HGCM82633A004352"), feed_row("2T1BURHE0JC000001")])
    records = list(iter_feed_records(path))

    assert [r.vin for r in records] == ["1HGCM82633A004352", "2T1BURHE0JC000001"]
    first = records[0]
    assert first.year == "2021"
    assert first.price == "24999"
    assert first.dealer_id == "D100"
    assert first.dol == "12"
    assert first.image_urls == "https://img.example/1.jpg,https://img.example/2.jpg"


def test_header_lookup_is_case_insensitive(tmp_path):
    path = _write(tmp_path, "vin\tDEALERID\tprice\nABC123\tD1\t100\n")
    (record,) = list(iter_feed_records(path))
    assert record.vin == "ABC123"
    assert record.dealer_id == "D1"
    assert record.price == "100"


def test_unknown_columns_are_ignored(tmp_path):
    path = _write(tmp_path, "VIN\tStockNumber\tMake\nABC123\tS-1\tFord\n")
    (record,) = list(iter_feed_records(path))
    assert record.vin == "ABC123"
    assert record.make == "Ford"


def test_short_rows_leave_trailing_fields_empty(tmp_path):
    path = _write(tmp_path, "VIN\tMake\tModel\tDol\nABC123\tFord\n")
    (record,) = list(iter_feed_records(path))
    assert record.make == "Ford"
    assert record.model == ""
    assert record.dol == ""


def test_long_rows_drop_extra_cells(tmp_path):
    path = _write(tmp_path, "VIN\tMake\nABC123\tFord\textra\tmore\n")
    (record,) = list(iter_feed_records(path))
    assert record.vin == "ABC123"
    assert record.make == "Ford"


def test_quotes_are_literal_data(tmp_path):
    path = _write(
        tmp_path,
        'VIN\tDescription\tTrim\nABC123\tThe "best" deal\t"SE\n',
    )
    (record,) = list(iter_feed_records(path))
    assert record.description == 'The "best" deal'
    assert record.trim == '"SE'


def test_unbalanced_quote_does_not_swallow_following_rows(tmp_path):
    path = _write(tmp_path, 'VIN\tTrim\nA1\t"SE\nA2\tLE\n')
    records = list(iter_feed_records(path))
    assert [r.vin for r in records] == ["A1", "A2"]


def test_byte_order_mark_is_stripped_from_header(tmp_path):
    path = _write(tmp_path, "VIN\tMake\nABC123\tFord\n", encoding="utf-8-sig")
    (record,) = list(iter_feed_records(path))
    assert record.vin == "ABC123"


def test_blank_lines_are_skipped(tmp_path):
    path = _write(tmp_path, "VIN\tMake\n\nA1\tFord\n\t\nA2\tKia\n")
    records = list(iter_feed_records(path))
    assert [r.vin for r in records] == ["A1", "A2"]


def test_values_are_trimmed(tmp_path):
    path = _write(tmp_path, "VIN\tMake\n  A1 \t Ford \n")
    (record,) = list(iter_feed_records(path))
    assert record.vin == "A1"
    assert record.make == "Ford"


def test_empty_file_raises_parse_error(tmp_path):
    path = _write(tmp_path, "")
    with pytest.raises(ParseError, match="empty"):
        list(iter_feed_records(path))


def test_header_without_vin_raises_parse_error(tmp_path):
    path = _write(tmp_path, "Make\tModel\nFord\tFocus\n")
    with pytest.raises(ParseError, match="VIN") as exc_info:
        list(iter_feed_records(path))
    assert exc_info.value.code == "PARSE"
    assert exc_info.value.details["header"] == ["Make", "Model"]


def test_missing_file_raises_parse_error(tmp_path):
    with pytest.raises(ParseError):
        list(iter_feed_records(tmp_path / "nope.tsv"))


def test_duplicate_header_first_occurrence_wins(tmp_path):
    path = _write(tmp_path, "VIN\tMake\tmake\nA1\tFord\tKia\n")
    (record,) = list(iter_feed_records(path))
    assert record.make == "Ford"


def test_record_from_cells_pads_missing_positions():
    record = record_from_cells(["A1"], [(0, "vin"), (3, "make")])
    assert record == RawFeedRecord(vin="A1")


def test_reader_is_lazy(tmp_path):
    rows = "\n".join(f"V{i}\tFord" for i in range(5))
    path = _write(tmp_path, "VIN\tMake\n" + rows + "\n")
    iterator = iter_feed_records(path)
    assert next(iterator).vin == "V0"
    assert next(iterator).vin == "V1"
