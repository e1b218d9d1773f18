# survey/local_state.py

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List

from survey.config import PENDING_SLOT, SURVEY_STATE_DIR
from survey.survey_types import Judgment

logger = logging.getLogger("survey_sync")


class LocalStateStore:
    """
    Named JSON slots on local disk that survive a restart of the rater client.

    Each slot is one file, `<state_dir>/<slot>.json`, holding a JSON array.
    Writes go to a temp file first and are swapped in with os.replace.
    """

    def __init__(self, state_dir: str | Path = SURVEY_STATE_DIR) -> None:
        self.state_dir = Path(state_dir)
        self._lock = threading.Lock()

    def _path(self, slot: str) -> Path:
        return self.state_dir / f"{slot}.json"

    def read(self, slot: str) -> List[Any]:
        path = self._path(slot)
        with self._lock:
            if not path.exists():
                return []
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"Slot '{slot}' at {path} does not hold a JSON array")
        return data

    def write(self, slot: str, records: List[Any]) -> None:
        path = self._path(slot)
        tmp = path.with_suffix(".json.tmp")
        with self._lock:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)

    def quarantine(self, slot: str) -> Path:
        """Move an unreadable slot file aside; the slot then reads as empty."""
        path = self._path(slot)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        aside = path.with_name(f"{path.name}.corrupt-{stamp}")
        with self._lock:
            os.replace(path, aside)
        return aside


class PendingQueue:
    """
    Durable queue of judgments not yet known to have reached the sink.

    Ordered multiset: entries are never deduplicated by content. The slot is
    read once when the queue is built and rewritten on every change.
    Entries are kept as the raw wire dicts so a record that no longer
    validates is still kept rather than dropped.
    """

    def __init__(self, store: LocalStateStore, slot: str = PENDING_SLOT) -> None:
        self.store = store
        self.slot = slot
        self._lock = threading.Lock()
        try:
            entries = store.read(slot)
        except ValueError as e:
            aside = store.quarantine(slot)
            logger.error("Slot '%s' is unreadable (%s); moved it to %s and starting empty", slot, e, aside)
            entries = []
        self._entries: List[dict] = list(entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def entries(self) -> List[dict]:
        with self._lock:
            return list(self._entries)

    def append(self, judgment: Judgment) -> None:
        with self._lock:
            entries = self._entries + [judgment.to_wire()]
            self.store.write(self.slot, entries)
            self._entries = entries
        logger.debug("Queued judgment for item %s (%d pending)", judgment.item_id, len(self))

    def remove_at(self, index: int) -> dict:
        with self._lock:
            entries = list(self._entries)
            entry = entries.pop(index)
            self.store.write(self.slot, entries)
            self._entries = entries
            return entry

    def persist(self) -> None:
        with self._lock:
            self.store.write(self.slot, self._entries)
