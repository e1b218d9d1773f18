"""Tests for the CSV item loader."""

from __future__ import annotations

from pathlib import Path

import pytest

import load_data
from load_data import collect_csv_files, load, parse_rows
from survey.item_store import ItemStore

SAMPLE = (
    "id,company,strategy,sustainability,date,usage\n"
    'S1,ACME,"Grow, then grow ""more""","Line one\nline two",2024-01-01,2\n'
    "S2,ACME,plain a,plain b\n"
    "\n"
    "S3,ACME,,missing a\n"
    "S4,ACME\n"
    "S5,Other,a5,b5,,oops\n"
)


@pytest.fixture
def sample_csv(tmp_path) -> Path:
    path = tmp_path / "items.csv"
    path.write_text(SAMPLE, encoding="utf-8")
    return path


def test_parse_rows_handles_quotes_and_skips_header(sample_csv):
    rows, rejected = parse_rows(sample_csv)

    assert [r["item_id"] for r in rows] == ["S1", "S2", "S5"]
    first = rows[0]
    assert first["text_a"] == 'Grow, then grow "more"'
    assert first["text_b"] == "Line one\nline two"
    assert first["source_date"] == "2024-01-01"
    assert first["usage_count"] == 2
    assert rows[1]["source_date"] is None
    assert rows[1]["usage_count"] == 0
    assert rows[2]["usage_count"] == 0
    assert len(rejected) == 2


def test_without_header_first_row_is_data(tmp_path):
    path = tmp_path / "raw.csv"
    path.write_text("S1,G,a,b\n", encoding="utf-8")

    rows, _ = parse_rows(path, has_header=False)

    assert [r["item_id"] for r in rows] == ["S1"]


def test_load_clears_then_counts_duplicates(item_store: ItemStore, sample_csv, tmp_path):
    dup = tmp_path / "dup.csv"
    dup.write_text("id,company,a,b\nS1,ACME,x,y\nS9,ACME,x,y\n", encoding="utf-8")

    inserted, errors = load(item_store, [sample_csv, dup])

    assert inserted == 4
    # two rejected rows plus the duplicate S1
    assert errors == 3
    assert item_store.count_items() == 4

    inserted, _ = load(item_store, [dup])
    assert inserted == 2
    assert item_store.count_items() == 2


def test_collect_csv_files(tmp_path):
    (tmp_path / "b.csv").write_text("", encoding="utf-8")
    (tmp_path / "a.CSV").write_text("", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("", encoding="utf-8")

    assert [p.name for p in collect_csv_files(tmp_path)] == ["a.CSV", "b.csv"]
    with pytest.raises(FileNotFoundError):
        collect_csv_files(tmp_path / "nope.csv")


def test_unreadable_file_leaves_pool_untouched(item_store: ItemStore, sample_csv, tmp_path):
    load(item_store, [sample_csv])
    before = item_store.count_items()
    broken = tmp_path / "broken.csv"
    broken.write_bytes(b"id,company,a,b\nS7,ACME,\xff\xfe bad,b\n")

    with pytest.raises(UnicodeDecodeError):
        load(item_store, [sample_csv, broken])

    assert item_store.count_items() == before


def test_main_reports_unreadable_file(tmp_path):
    broken = tmp_path / "broken.csv"
    broken.write_bytes(b"id,company,a,b\nS7,ACME,\xff bad,b\n")
    db_url = f"sqlite:///{tmp_path / 'items.db'}"

    assert load_data.main([str(broken), "--database-url", db_url]) == 1
