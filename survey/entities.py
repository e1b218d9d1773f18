# survey/entities.py
from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ItemRow(Base):
    __tablename__ = "items"

    # externally assigned (e.g. S100TWSV1)
    item_id: Mapped[str] = mapped_column(String, primary_key=True)

    # source entity (company) the pair was drawn from
    group_key: Mapped[str] = mapped_column(String, nullable=False)

    text_a: Mapped[str] = mapped_column(Text, nullable=False)
    text_b: Mapped[str] = mapped_column(Text, nullable=False)
    source_date: Mapped[str | None] = mapped_column(String)

    # only ever incremented; approximates "times shown", not "times judged"
    usage_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    __table_args__ = (
        Index("ix_items_usage_created", "usage_count", "created_at"),
        Index("ix_items_group_key", "group_key"),
    )


class JudgmentRow(Base):
    __tablename__ = "judgments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rater_name: Mapped[str] = mapped_column(String, nullable=False)
    text_a: Mapped[str] = mapped_column(Text, nullable=False)
    text_b: Mapped[str] = mapped_column(Text, nullable=False)

    # no FK: judgments outlive a reload of the item pool
    item_id: Mapped[str] = mapped_column(String, nullable=False)

    score: Mapped[int] = mapped_column(Integer, nullable=False)

    # rater clock, ISO-8601, as sent
    timestamp: Mapped[str] = mapped_column(String, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    __table_args__ = (
        Index("ix_judgments_rater_item", "rater_name", "item_id"),
    )
