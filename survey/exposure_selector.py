# survey/exposure_selector.py
"""
Exposure selector
-----------------

Decides which items one rater sees in one session.

Eligible items are those whose usage counter is below the saturation
threshold and which the rater has never judged (checked against the rater's
whole history, not just the current sitting). Eligible items are partitioned
by group key and the group with the smallest summed usage wins; the batch is
up to `limit` items of that single group, in pool order.

Exhausting one under-served group at a time keeps a rater inside one source
entity and keeps usage balanced at group granularity.

The selector is a pure read over a snapshot. Usage counters are bumped by the
client as items are judged, so two raters selecting concurrently can both
spend an item's last unit of budget. That overshoot is tolerated and bounded:
a rater judges an item at most once, so an item below the threshold ends at
most (threshold - 1) + (number of sessions that selected it concurrently).
No locking is added to prevent it.
"""
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

from survey.config import SESSION_CAP, USAGE_THRESHOLD
from survey.survey_types import Item, PoolSnapshot


def eligible_items(snapshot: PoolSnapshot, threshold: int = USAGE_THRESHOLD) -> List[Item]:
    judged = snapshot.judged_item_ids
    return [
        item for item in snapshot.items
        if item.usage_count < threshold and item.id not in judged
    ]


def group_items(items: List[Item]) -> "OrderedDict[str, List[Item]]":
    """
    Partition items by group key, keeping pool order inside each group.
    """
    groups: "OrderedDict[str, List[Item]]" = OrderedDict()
    for item in items:
        groups.setdefault(item.group_key, []).append(item)
    return groups


def group_usage_totals(groups: Dict[str, List[Item]]) -> Dict[str, int]:
    return {key: sum(i.usage_count for i in members) for key, members in groups.items()}


def pick_group(totals: Dict[str, int]) -> Optional[str]:
    """
    Group with the minimum summed usage; ties go to the lexically smallest key.
    """
    if not totals:
        return None
    ranked: List[Tuple[int, str]] = sorted((usage, key) for key, usage in totals.items())
    return ranked[0][1]


def select_batch(
    snapshot: PoolSnapshot,
    *,
    threshold: int = USAGE_THRESHOLD,
    limit: int = SESSION_CAP,
) -> List[Item]:
    """
    Pick one session's worth of items.

    Returns up to `limit` items, all from one group, in the snapshot's order
    (usage asc, creation asc). No shuffling here: presentation order is the
    session's business. An empty list means "no more work" and is not an error.
    """
    if limit <= 0:
        return []

    groups = group_items(eligible_items(snapshot, threshold))
    chosen = pick_group(group_usage_totals(groups))
    if chosen is None:
        return []
    return groups[chosen][:limit]
