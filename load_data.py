# load_data.py
"""
Bulk-load survey items from CSV.

    python load_data.py <csv file or directory> [--no-header] [--keep-existing]

Columns: id, group (company), text A (strategy), text B (sustainability),
optional date, optional initial usage count. Quoted fields may contain
commas, quotes and newlines. Existing items are cleared first unless
--keep-existing is given.
"""
import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from survey.config import DATABASE_URL, LOG_FORMAT, LOG_LEVEL
from survey.db_connection import DBConnection
from survey.item_store import ItemStore

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger("survey_loader")


def collect_csv_files(input_path: Path) -> List[Path]:
    if input_path.is_dir():
        return sorted(p for p in input_path.iterdir() if p.suffix.lower() == ".csv")
    if not input_path.exists():
        raise FileNotFoundError(f"CSV file not found: {input_path}")
    return [input_path]


def _to_int(value: str) -> int:
    try:
        return max(0, int(value.strip()))
    except ValueError:
        return 0


def parse_rows(csv_path: Path, has_header: bool = True) -> Tuple[List[dict], List[str]]:
    """
    Returns (rows ready for ItemStore.insert_items, rejected row descriptions).
    """
    rows: List[dict] = []
    rejected: List[str] = []

    with csv_path.open("r", encoding="utf-8-sig", newline="") as f:
        reader: Iterator[List[str]] = csv.reader(f)
        for record_no, columns in enumerate(reader, start=1):
            if has_header and record_no == 1:
                continue
            if not any(c.strip() for c in columns):
                continue
            if len(columns) < 4:
                rejected.append(f"{csv_path.name}:{record_no}: {len(columns)} columns")
                continue

            item_id = columns[0].strip()
            text_a = columns[2].strip()
            text_b = columns[3].strip()
            if not (item_id and text_a and text_b):
                rejected.append(f"{csv_path.name}:{record_no}: missing required data (ID: {item_id})")
                continue

            rows.append({
                "item_id": item_id,
                "group_key": columns[1].strip(),
                "text_a": text_a,
                "text_b": text_b,
                "source_date": (columns[4].strip() or None) if len(columns) > 4 else None,
                "usage_count": _to_int(columns[5]) if len(columns) > 5 else 0,
            })
    return rows, rejected


def load(store: ItemStore, csv_files: List[Path], has_header: bool = True, clear: bool = True) -> Tuple[int, int]:
    """
    Parse every file first, then clear (unless told not to) and insert.

    A file that cannot be read aborts the load before the pool is touched.
    """
    parsed: List[Tuple[Path, List[dict], List[str]]] = []
    for csv_path in csv_files:
        logger.info("Reading %s", csv_path)
        rows, rejected = parse_rows(csv_path, has_header=has_header)
        parsed.append((csv_path, rows, rejected))

    if clear:
        removed = store.clear_items()
        logger.info("Cleared %d existing items", removed)

    total_inserted = 0
    total_errors = 0
    for csv_path, rows, rejected in parsed:
        for reason in rejected:
            logger.warning("Skipped row %s", reason)
        inserted, errors = store.insert_items(rows)
        total_inserted += inserted
        total_errors += len(rejected) + len(errors)
        logger.info("%s: inserted %d, errors %d", csv_path.name, inserted, len(rejected) + len(errors))

    return total_inserted, total_errors


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Load survey items from CSV")
    parser.add_argument("path", help="CSV file or directory of CSV files")
    parser.add_argument("--no-header", action="store_true", help="first row is data")
    parser.add_argument("--keep-existing", action="store_true", help="do not clear items first")
    parser.add_argument("--database-url", default=DATABASE_URL)
    args = parser.parse_args(argv)

    csv_files = collect_csv_files(Path(args.path))
    if not csv_files:
        logger.error("No CSV files in %s", args.path)
        return 1

    conn = DBConnection(args.database_url)
    conn.create_tables()
    store = ItemStore(conn.build_db_session_factory())

    try:
        inserted, errors = load(store, csv_files, has_header=not args.no_header, clear=not args.keep_existing)
    except (UnicodeDecodeError, csv.Error) as e:
        logger.error("Could not read CSV input, items left unchanged: %s", e)
        return 1
    logger.info("Done: inserted %d, errors %d, items in database %d", inserted, errors, store.count_items())
    return 0


if __name__ == "__main__":
    sys.exit(main())
