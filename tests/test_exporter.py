"""Tests for CSV export of judgments."""

from __future__ import annotations

import csv
import io
from datetime import date

import pytest
from conftest import FakeSurveyClient, make_judgment

from survey.errors import StorageUnavailable
from survey.exporter import EXPORT_HEADER, export_all_results, export_rater_results, render_csv, write_export

DAY = date(2024, 4, 2)


def parse(text: str) -> list:
    return list(csv.reader(io.StringIO(text)))


def test_render_csv_quotes_commas_quotes_and_newlines():
    judgment = make_judgment("A1").model_copy(update={"text_a": 'grow, "fast"\nand green'})

    rows = parse(render_csv([judgment]))

    assert rows[0] == EXPORT_HEADER
    assert rows[1][0] == "A1"
    assert rows[1][2] == 'grow, "fast"\nand green'
    assert rows[1][5] == "2024-04-01T09:00:00.000Z"
    # local judgments have no server timestamp
    assert rows[1][6] == ""


@pytest.mark.asyncio
async def test_rater_export_reads_history_from_sink():
    client = FakeSurveyClient()
    await client.submit_judgment(make_judgment("A1", rater="alice"))
    await client.submit_judgment(make_judgment("B1", rater="bob"))

    name, text = await export_rater_results(client, "alice", [], today=DAY)

    rows = parse(text)
    assert name == "evaluation_results_alice_2024-04-02.csv"
    assert [r[0] for r in rows[1:]] == ["A1"]
    assert rows[1][6].startswith("2024-04-01T09:00")


@pytest.mark.asyncio
async def test_rater_export_falls_back_to_local_judgments():
    client = FakeSurveyClient(history_available=False)
    local = [make_judgment("A1"), make_judgment("A2")]

    name, text = await export_rater_results(client, "alice", local, today=DAY)

    assert name == "evaluation_results_local_2024-04-02.csv"
    assert [r[0] for r in parse(text)[1:]] == ["A1", "A2"]


@pytest.mark.asyncio
async def test_rater_name_is_made_file_safe():
    name, _ = await export_rater_results(FakeSurveyClient(), "Ann Lee/2", [], today=DAY)

    assert name == "evaluation_results_Ann_Lee_2_2024-04-02.csv"


@pytest.mark.asyncio
async def test_export_all_has_no_fallback():
    with pytest.raises(StorageUnavailable):
        await export_all_results(FakeSurveyClient(history_available=False), today=DAY)


@pytest.mark.asyncio
async def test_export_all_includes_every_rater():
    client = FakeSurveyClient()
    await client.submit_judgment(make_judgment("A1", rater="alice"))
    await client.submit_judgment(make_judgment("B1", rater="bob"))

    name, text = await export_all_results(client, today=DAY)

    assert name == "all_evaluation_results_2024-04-02.csv"
    assert sorted(r[1] for r in parse(text)[1:]) == ["alice", "bob"]


def test_write_export_adds_bom(tmp_path):
    path = write_export(tmp_path / "out", "x.csv", render_csv([make_judgment()]))

    raw = path.read_bytes()
    assert raw.startswith(b"\xef\xbb\xbf")
    assert raw.decode("utf-8-sig").splitlines()[0] == ",".join(EXPORT_HEADER)
