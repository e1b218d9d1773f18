# survey/exporter.py

import csv
import io
import logging
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from survey.config import HISTORY_LIMIT
from survey.errors import StorageUnavailable
from survey.survey_client import SurveyClient
from survey.survey_types import Judgment, StoredJudgment

logger = logging.getLogger("survey_client")

EXPORT_HEADER = ["item_id", "rater_name", "text_a", "text_b", "score", "rater_timestamp", "server_timestamp"]

# BOM-prefixed, as spreadsheet tools expect
EXPORT_ENCODING = "utf-8-sig"


def _row(record: Judgment | StoredJudgment) -> list:
    server_ts = ""
    if isinstance(record, StoredJudgment) and record.created_at is not None:
        server_ts = record.created_at.isoformat()
    return [
        record.item_id,
        record.rater_name,
        record.text_a,
        record.text_b,
        record.score,
        record.timestamp,
        server_ts,
    ]


def render_csv(records: Iterable[Judgment | StoredJudgment]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for record in records:
        writer.writerow(_row(record))
    return buf.getvalue()


def _safe_name(s: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "_.-" else "_" for ch in s)


async def export_rater_results(
    client: SurveyClient,
    rater_name: str,
    local_judgments: List[Judgment],
    *,
    today: Optional[date] = None,
) -> Tuple[str, str]:
    """
    Export one rater's history from the sink.

    Falls back to the local buffer when the sink cannot be read.
    Returns (file_name, csv_text).
    """
    day = (today or date.today()).isoformat()
    try:
        records = await client.fetch_judgments(rater_name=rater_name)
        return f"evaluation_results_{_safe_name(rater_name)}_{day}.csv", render_csv(records)
    except StorageUnavailable as e:
        logger.warning("Could not read results from the sink, exporting local data instead: %s", e)
        return f"evaluation_results_local_{day}.csv", render_csv(local_judgments)


async def export_all_results(
    client: SurveyClient,
    *,
    limit: int = HISTORY_LIMIT,
    today: Optional[date] = None,
) -> Tuple[str, str]:
    """
    Export every rater's judgments. No fallback.

    Raises:
        StorageUnavailable: sink unreachable
    """
    day = (today or date.today()).isoformat()
    records = await client.fetch_judgments(limit=limit)
    return f"all_evaluation_results_{day}.csv", render_csv(records)


def write_export(directory: str | Path, file_name: str, content: str) -> Path:
    path = Path(directory) / file_name
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding=EXPORT_ENCODING, newline="") as f:
        f.write(content)
    return path
