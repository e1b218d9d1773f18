"""Shared fixtures: in-process fake of the HTTP boundary and an in-memory item store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from survey.db_connection import DBConnection
from survey.errors import StorageUnavailable, TransientDeliveryError
from survey.item_store import ItemStore
from survey.local_state import LocalStateStore, PendingQueue
from survey.survey_types import Item, Judgment, StoredJudgment

BASE_TIME = datetime(2024, 4, 1, 9, 0, tzinfo=timezone.utc)


def make_item(item_id: str, group_key: str = "A", usage: int = 0, order: int = 0) -> Item:
    return Item(
        id=item_id,
        group_key=group_key,
        text_a=f"strategy text of {item_id}",
        text_b=f"sustainability text of {item_id}",
        usage_count=usage,
        created_at=BASE_TIME + timedelta(seconds=order),
    )


def make_batch(count: int, group_key: str = "A") -> List[Item]:
    return [make_item(f"{group_key}{i}", group_key, order=i) for i in range(count)]


def make_judgment(item_id: str = "A1", rater: str = "alice", score: int = 3) -> Judgment:
    return Judgment(
        rater_name=rater,
        text_a=f"strategy text of {item_id}",
        text_b=f"sustainability text of {item_id}",
        item_id=item_id,
        score=score,
        timestamp="2024-04-01T09:00:00.000Z",
    )


class FakeSurveyClient:
    """
    Stand-in for SurveyClient.

    submit attempts are counted from 1 across the client's lifetime;
    attempts listed in `fail_submits` raise TransientDeliveryError.
    """

    def __init__(
        self,
        batches: Optional[Iterable[List[Item]]] = None,
        fail_submits: Optional[Set[int]] = None,
        fail_all_submits: bool = False,
        fail_increments: bool = False,
        history_available: bool = True,
    ) -> None:
        self.batches: List[List[Item]] = list(batches or [])
        self.fail_submits = set(fail_submits or ())
        self.fail_all_submits = fail_all_submits
        self.fail_increments = fail_increments
        self.history_available = history_available

        self.batch_requests: List[Dict[str, object]] = []
        self.increments: List[str] = []
        self.submit_attempts = 0
        self.delivered: List[Judgment] = []
        self.attempted: List[Judgment] = []

    async def fetch_batch(self, rater_name: str, limit: int = 15) -> List[Item]:
        self.batch_requests.append({"rater_name": rater_name, "limit": limit})
        if not self.batches:
            return []
        return self.batches.pop(0)

    async def increment_usage(self, item_id: str) -> int:
        self.increments.append(item_id)
        if self.fail_increments:
            raise TransientDeliveryError("increment refused", status_code=500)
        return 1

    async def submit_judgment(self, judgment: Judgment) -> Optional[int]:
        self.submit_attempts += 1
        self.attempted.append(judgment)
        if self.fail_all_submits or self.submit_attempts in self.fail_submits:
            raise TransientDeliveryError("sink unavailable", status_code=503)
        self.delivered.append(judgment)
        return len(self.delivered)

    async def fetch_judgments(self, rater_name: Optional[str] = None, limit: int = 1000) -> List[StoredJudgment]:
        if not self.history_available:
            raise StorageUnavailable("GET /judgments returned 503")
        rows = [
            StoredJudgment(id=i + 1, created_at=BASE_TIME, **j.model_dump())
            for i, j in enumerate(self.delivered)
            if rater_name is None or j.rater_name == rater_name
        ]
        return list(reversed(rows))[:limit]

    async def fetch_item_stats(self) -> dict:
        return {"totalItems": 0, "availableItems": 0}


@pytest.fixture
def fake_client() -> FakeSurveyClient:
    return FakeSurveyClient()


@pytest.fixture
def state_store(tmp_path) -> LocalStateStore:
    return LocalStateStore(tmp_path / "state")


@pytest.fixture
def pending_queue(state_store: LocalStateStore) -> PendingQueue:
    return PendingQueue(state_store)


@pytest.fixture
def item_store() -> ItemStore:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    conn = DBConnection("sqlite://", engine=engine)
    conn.create_tables()
    return ItemStore(conn.build_db_session_factory())


def seed_items(store: ItemStore, rows: Iterable[tuple]) -> None:
    """rows: (item_id, group_key, usage_count)"""
    inserted, errors = store.insert_items(
        {
            "item_id": item_id,
            "group_key": group,
            "text_a": f"strategy text of {item_id}",
            "text_b": f"sustainability text of {item_id}",
            "usage_count": usage,
            "created_at": BASE_TIME + timedelta(seconds=n),
        }
        for n, (item_id, group, usage) in enumerate(rows)
    )
    assert not errors
