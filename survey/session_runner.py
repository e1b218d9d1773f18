# survey/session_runner.py
"""
session_runner.py
-----------------

Drives one rater through a selected batch.

    IDLE --start--> RUNNING --advance (cap/batch end)--> CONFIRMING
    RUNNING --request_exit--> CONFIRMING
    CONFIRMING --confirm_stop(False)--> RUNNING
    CONFIRMING --confirm_stop(True)--> COMPLETED | EXITED_EARLY
    COMPLETED | EXITED_EARLY --continue_answering--> RUNNING (fresh batch)

CONFIRMING is where the rater is asked "finish now?". Declining after the cap
steps back to the previous item (its judgment is dropped); declining an early
exit just resumes. Accepting discards the session and flushes the buffer.

All state lives on the runner and its Session; transitions are driven by
discrete rater actions, one at a time. Invalid transitions raise
ValidationError and leave everything as it was.
"""
import enum
import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from survey.config import PARTIAL_SLOT, SCORE_MAX, SCORE_MIN, SESSION_CAP
from survey.errors import ValidationError
from survey.judgment_sync import JudgmentSync
from survey.local_state import LocalStateStore
from survey.survey_client import SurveyClient
from survey.survey_types import DeliveryOutcome, Item, Judgment
from survey.usage_accounting import UsageAccountant

logger = logging.getLogger("survey_session")


class SessionState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    CONFIRMING = "confirming"
    COMPLETED = "completed"
    EXITED_EARLY = "exited_early"


class StopReason(enum.Enum):
    CAP_REACHED = "cap_reached"
    EARLY_EXIT = "early_exit"


class BatchOutcome(enum.Enum):
    LOADED = "loaded"
    POOL_EXHAUSTED = "pool_exhausted"


@dataclass
class Session:
    batch: List[Item]
    permutation: List[int]
    cap: int
    cursor: int = 0

    def current_item(self) -> Optional[Item]:
        if self.cursor >= self.cap:
            return None
        return self.batch[self.permutation[self.cursor]]

    @property
    def finished(self) -> bool:
        return self.cursor >= self.cap


@dataclass
class SessionRunner:
    client: SurveyClient
    sync: JudgmentSync
    accountant: UsageAccountant
    state_store: Optional[LocalStateStore] = None
    cap: int = SESSION_CAP
    score_range: Tuple[int, int] = (SCORE_MIN, SCORE_MAX)
    rng: random.Random = field(default_factory=random.Random)

    rater_name: str = ""
    state: SessionState = SessionState.IDLE
    session: Optional[Session] = None
    stop_reason: Optional[StopReason] = None

    # -----------------------
    # Queries
    # -----------------------

    def current_item(self) -> Optional[Item]:
        if self.session is None or self.state != SessionState.RUNNING:
            return None
        return self.session.current_item()

    @property
    def progress(self) -> Tuple[int, int]:
        """(answered, cap) for a progress bar; cap is the session cap, not the batch size."""
        cursor = self.session.cursor if self.session is not None else 0
        return cursor, self.cap

    # -----------------------
    # Batch loading
    # -----------------------

    def _require_name(self) -> str:
        name = (self.rater_name or "").strip()
        if not name:
            raise ValidationError("Rater name is required")
        return name

    def _require_state(self, *allowed: SessionState) -> None:
        if self.state not in allowed:
            names = ", ".join(s.name for s in allowed)
            raise ValidationError(f"Not allowed in state {self.state.name} (expected {names})")

    async def _load_batch(self) -> BatchOutcome:
        name = self._require_name()
        batch = await self.client.fetch_batch(name, limit=self.cap)
        if not batch:
            logger.info("No more items for rater=%s", name)
            return BatchOutcome.POOL_EXHAUSTED

        permutation = list(range(len(batch)))
        # shuffled once per batch; retreat re-shows exactly the previous item
        self.rng.shuffle(permutation)
        self.session = Session(batch=batch, permutation=permutation, cap=min(self.cap, len(batch)))
        self.stop_reason = None
        self.state = SessionState.RUNNING
        logger.info("Session started for rater=%s (%d items, group=%s)", name, self.session.cap, batch[0].group_key)
        return BatchOutcome.LOADED

    async def start(self, rater_name: Optional[str] = None) -> BatchOutcome:
        """
        Load the first batch. Pool exhaustion is returned, not raised; a fetch
        failure raises TransientDeliveryError. Either way the runner stays IDLE.
        """
        self._require_state(SessionState.IDLE)
        if rater_name is not None:
            previous = self.rater_name
            self.rater_name = rater_name
            try:
                self._require_name()
            except ValidationError:
                self.rater_name = previous
                raise
        return await self._load_batch()

    async def continue_answering(self) -> BatchOutcome:
        """Replace the finished session with a fresh batch. No merging."""
        self._require_state(SessionState.COMPLETED, SessionState.EXITED_EARLY)
        return await self._load_batch()

    # -----------------------
    # Rater actions
    # -----------------------

    def advance(self, score: int) -> Judgment:
        """
        Record a score for the current item and move on.

        Fires the usage increment without waiting for it. When the cap or the
        end of the batch is reached the runner waits in CONFIRMING.
        """
        self._require_state(SessionState.RUNNING)
        name = self._require_name()
        low, high = self.score_range
        if isinstance(score, bool) or not isinstance(score, int) or not low <= score <= high:
            raise ValidationError(f"Score must be an integer in [{low}, {high}]")
        item = self.current_item()
        if item is None:
            raise ValidationError("No item to judge at the current position")

        judgment = Judgment.from_item(name, item, score)
        self.sync.enqueue(judgment)
        self.accountant.record_shown(item.id)
        self.session.cursor += 1

        if self.session.finished:
            self.state = SessionState.CONFIRMING
            self.stop_reason = StopReason.CAP_REACHED
        return judgment

    def retreat(self) -> bool:
        """
        Go back one item and drop its judgment. False (and no change) at cursor 0.
        The usage increment already sent for that item is not undone.
        """
        self._require_state(SessionState.RUNNING, SessionState.CONFIRMING)
        if self.session is None or self.session.cursor == 0:
            return False
        self.session.cursor -= 1
        self.sync.buffer.discard_last()
        self.state = SessionState.RUNNING
        self.stop_reason = None
        return True

    def request_exit(self) -> None:
        self._require_state(SessionState.RUNNING)
        self.state = SessionState.CONFIRMING
        self.stop_reason = StopReason.EARLY_EXIT

    async def confirm_stop(self, accepted: bool) -> List[DeliveryOutcome]:
        """
        Answer the "finish now?" prompt.

        Declined: back to RUNNING (one item back when the cap was reached).
        Accepted: session discarded, buffer flushed, outcomes returned.
        """
        self._require_state(SessionState.CONFIRMING)
        reason = self.stop_reason

        if not accepted:
            if reason == StopReason.CAP_REACHED:
                self.retreat()
            else:
                self.state = SessionState.RUNNING
                self.stop_reason = None
            return []

        if reason == StopReason.EARLY_EXIT:
            if self.state_store is not None:
                self.state_store.write(PARTIAL_SLOT, [j.to_wire() for j in self.sync.buffer.snapshot()])
            self.state = SessionState.EXITED_EARLY
        else:
            self.state = SessionState.COMPLETED
        self.session = None
        logger.info("Session ended for rater=%s (%s)", self.rater_name, self.state.value)

        return await self.sync.flush()

    def reset(self) -> None:
        """Leave without continuing. Unflushed judgments stay in the buffer."""
        self.session = None
        self.stop_reason = None
        self.state = SessionState.IDLE
