"""Feed archive extraction tests."""

from __future__ import annotations

import zipfile

import pytest
from conftest import feed_row

from carzo_feed.errors import ArchiveError
from carzo_feed.ingestion.archive import _pick_tabular_member, extract_feed_file
from carzo_feed.ingestion.reader import iter_feed_records


def _zip(path, members):
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return path


def test_extracts_tsv_beside_archive(write_archive, tmp_path):
    archive = write_archive([feed_row("A1"), feed_row("A2")])

    extracted = extract_feed_file(archive)

    assert extracted == tmp_path / "feed-1.tsv"
    assert extracted.is_file()
    assert not (tmp_path / "master269000.tsv").exists()
    assert [r.vin for r in iter_feed_records(extracted)] == ["A1", "A2"]


def test_nested_member_is_flattened_to_target(write_archive, tmp_path):
    archive = write_archive([feed_row("A1")], member="export/daily/inventory.tsv")

    extracted = extract_feed_file(archive)

    assert extracted == tmp_path / "feed-1.tsv"
    assert not (tmp_path / "export").exists()


def test_prefers_tsv_over_other_tabular_files():
    names = ["__MACOSX/._feed.tsv", "notes/", "readme.txt", "feed.csv", "feed.TSV"]
    assert _pick_tabular_member(names) == "feed.TSV"
    assert _pick_tabular_member(["a.csv", "b.txt"]) == "b.txt"
    assert _pick_tabular_member(["readme.md"]) is None


def test_archive_without_tabular_member_raises(tmp_path):
    archive = _zip(tmp_path / "feed.zip", {"readme.md": "hello"})
    with pytest.raises(ArchiveError, match="No tabular file") as exc_info:
        extract_feed_file(archive)
    assert exc_info.value.code == "ARCHIVE"
    assert exc_info.value.details["members"] == ["readme.md"]


def test_corrupt_archive_raises(tmp_path):
    archive = tmp_path / "feed.zip"
    archive.write_bytes(b"this is not a zip file")
    with pytest.raises(ArchiveError, match="Could not extract"):
        extract_feed_file(archive)


def test_missing_archive_raises(tmp_path):
    with pytest.raises(ArchiveError):
        extract_feed_file(tmp_path / "missing.zip")


def test_member_path_is_never_used_on_disk(tmp_path):
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    archive = _zip(scratch / "feed.zip", {"../escaped.tsv": "VIN\nA1\n"})

    extracted = extract_feed_file(archive)

    assert extracted == scratch / "feed.tsv"
    assert [r.vin for r in iter_feed_records(extracted)] == ["A1"]
    assert not (tmp_path / "escaped.tsv").exists()


def test_extracts_into_destination_dir(write_archive, tmp_path):
    archive = write_archive([feed_row("A1")])
    dest = tmp_path / "work"
    dest.mkdir()

    extracted = extract_feed_file(archive, dest)

    assert extracted == dest / "feed-1.tsv"
    assert not (tmp_path / "feed-1.tsv").exists()


def test_existing_target_is_not_overwritten(write_archive, tmp_path):
    archive = write_archive([feed_row("A1")])
    existing = tmp_path / "feed-1.tsv"
    existing.write_text("operator data", encoding="utf-8")

    with pytest.raises(ArchiveError, match="Refusing to overwrite"):
        extract_feed_file(archive)
    assert existing.read_text(encoding="utf-8") == "operator data"
