# survey/item_store.py

import logging
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from survey.config import HISTORY_LIMIT, USAGE_THRESHOLD
from survey.entities import ItemRow, JudgmentRow
from survey.survey_types import Item, Judgment, PoolSnapshot, StoredJudgment

logger = logging.getLogger("survey_server")


def _item_from_row(row: ItemRow) -> Item:
    return Item(
        id=row.item_id,
        group_key=row.group_key,
        text_a=row.text_a,
        text_b=row.text_b,
        usage_count=row.usage_count or 0,
        created_at=row.created_at,
    )


def _stored_from_row(row: JudgmentRow) -> StoredJudgment:
    return StoredJudgment(
        id=row.id,
        rater_name=row.rater_name,
        text_a=row.text_a,
        text_b=row.text_b,
        item_id=row.item_id,
        score=row.score,
        timestamp=row.timestamp,
        created_at=row.created_at,
    )


class ItemStore:
    """
    Persistence for the item pool and the judgment sink.

    One short-lived Session per call. Usage increments are blind
    `usage_count = usage_count + 1` updates; there is no read-modify-write
    and no cross-rater locking.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.SessionFactory = session_factory

    # -----------------------
    # Item pool
    # -----------------------

    def pool_snapshot(self, rater_name: Optional[str], threshold: int = USAGE_THRESHOLD) -> PoolSnapshot:
        session = self.SessionFactory()
        try:
            rows = session.scalars(
                select(ItemRow)
                .where(ItemRow.usage_count < threshold)
                .order_by(ItemRow.usage_count.asc(), ItemRow.created_at.asc(), ItemRow.item_id.asc())
            ).all()

            judged: frozenset = frozenset()
            if rater_name:
                judged = frozenset(
                    session.scalars(
                        select(JudgmentRow.item_id)
                        .where(JudgmentRow.rater_name == rater_name)
                        .distinct()
                    ).all()
                )

            return PoolSnapshot(items=[_item_from_row(r) for r in rows], judged_item_ids=judged)
        finally:
            session.close()

    def increment_usage(self, item_id: str) -> int:
        session = self.SessionFactory()
        try:
            result = session.execute(
                update(ItemRow)
                .where(ItemRow.item_id == str(item_id))
                .values(usage_count=ItemRow.usage_count + 1)
            )
            session.commit()
            return result.rowcount or 0
        finally:
            session.close()

    def item_stats(self, threshold: int = USAGE_THRESHOLD) -> dict:
        session = self.SessionFactory()
        try:
            total = session.scalar(select(func.count()).select_from(ItemRow)) or 0
            saturated = session.scalar(
                select(func.count()).select_from(ItemRow).where(ItemRow.usage_count >= threshold)
            ) or 0
            groups = session.scalar(select(func.count(func.distinct(ItemRow.group_key)))) or 0
            return {
                "totalItems": total,
                "saturatedItems": saturated,
                "availableItems": total - saturated,
                "groups": groups,
            }
        finally:
            session.close()

    # -----------------------
    # Bulk load
    # -----------------------

    def clear_items(self) -> int:
        session = self.SessionFactory()
        try:
            result = session.execute(delete(ItemRow))
            session.commit()
            return result.rowcount or 0
        finally:
            session.close()

    def insert_items(self, rows: Iterable[dict]) -> Tuple[int, List[str]]:
        """
        Insert item rows one by one so a bad row does not sink the rest.

        Each dict needs item_id, group_key, text_a, text_b and may carry
        source_date and usage_count. Returns (inserted, errors).
        """
        inserted = 0
        errors: List[str] = []
        session = self.SessionFactory()
        try:
            for row in rows:
                try:
                    session.add(ItemRow(**row))
                    session.commit()
                    inserted += 1
                except IntegrityError as e:
                    session.rollback()
                    errors.append(f"{row.get('item_id')}: {e.orig}")
                    logger.warning("Insert failed (ID: %s): %s", row.get("item_id"), e.orig)
            return inserted, errors
        finally:
            session.close()

    def count_items(self) -> int:
        session = self.SessionFactory()
        try:
            return session.scalar(select(func.count()).select_from(ItemRow)) or 0
        finally:
            session.close()

    # -----------------------
    # Judgment sink
    # -----------------------

    def add_judgment(self, judgment: Judgment) -> int:
        # no dedup: a re-delivered judgment becomes a second row
        session = self.SessionFactory()
        try:
            row = JudgmentRow(
                rater_name=judgment.rater_name,
                text_a=judgment.text_a,
                text_b=judgment.text_b,
                item_id=judgment.item_id,
                score=judgment.score,
                timestamp=judgment.timestamp,
            )
            session.add(row)
            session.commit()
            return row.id
        finally:
            session.close()

    def list_judgments(self, rater_name: Optional[str] = None, limit: int = HISTORY_LIMIT) -> List[StoredJudgment]:
        session = self.SessionFactory()
        try:
            stmt = select(JudgmentRow)
            if rater_name:
                stmt = stmt.where(JudgmentRow.rater_name == rater_name)
            stmt = stmt.order_by(JudgmentRow.created_at.desc(), JudgmentRow.id.desc()).limit(int(limit))
            return [_stored_from_row(r) for r in session.scalars(stmt).all()]
        finally:
            session.close()

    def judgment_stats(self) -> dict:
        session = self.SessionFactory()
        try:
            total, raters, average, items = session.execute(
                select(
                    func.count(JudgmentRow.id),
                    func.count(func.distinct(JudgmentRow.rater_name)),
                    func.avg(JudgmentRow.score),
                    func.count(func.distinct(JudgmentRow.item_id)),
                )
            ).one()
            return {
                "totalJudgments": total or 0,
                "uniqueRaters": raters or 0,
                "averageScore": float(average) if average is not None else None,
                "uniqueItems": items or 0,
            }
        finally:
            session.close()
