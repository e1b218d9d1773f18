# survey/survey_types.py
"""
Wire/domain models shared by the server, the rater client and the sync layer.

Everything is serialized with camelCase aliases (raterName, textA, itemId, ...),
which is the JSON shape the HTTP API and the durable local slots use.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_timestamp() -> str:
    # 2024-05-01T09:30:12.345Z
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class Item(WireModel):
    id: str
    group_key: str
    text_a: str
    text_b: str
    usage_count: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None


class Judgment(WireModel):
    """
    One rater's score for one item. Texts are copied verbatim at judgment time.
    Immutable: "going back" drops the whole record instead of editing it.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    rater_name: str = Field(min_length=1)
    text_a: str = Field(min_length=1)
    text_b: str = Field(min_length=1)
    item_id: str = Field(min_length=1)
    score: int = Field(ge=1)
    timestamp: str = Field(min_length=1)

    @field_validator("rater_name")
    @classmethod
    def _strip_rater_name(cls, value: str) -> str:
        # stored stripped; whitespace-only counts as blank
        value = value.strip()
        if not value:
            raise ValueError("rater name must not be blank")
        return value

    @classmethod
    def from_item(cls, rater_name: str, item: Item, score: int) -> "Judgment":
        return cls(
            rater_name=rater_name,
            text_a=item.text_a,
            text_b=item.text_b,
            item_id=item.id,
            score=score,
            timestamp=utc_timestamp(),
        )


class StoredJudgment(WireModel):
    id: int
    rater_name: str
    text_a: str
    text_b: str
    item_id: str
    score: int
    timestamp: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class PoolSnapshot:
    """
    Point-in-time read of the item pool for one rater.

    items: unsaturated items, ordered usage_count asc, then creation asc
    judged_item_ids: every item id this rater has ever judged
    """
    items: List[Item] = field(default_factory=list)
    judged_item_ids: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class DeliveryOutcome:
    judgment: Judgment
    delivered: bool
    remote_id: Optional[int] = None
