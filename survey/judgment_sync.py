# survey/judgment_sync.py
"""
Judgment buffer and delivery to the remote sink.

Guarantee: every enqueued judgment ends up either confirmed by the sink or in
the durable pending queue. Nothing is dropped.

Known gap: delivery is at-least-once. If the sink stores a judgment but the
client never sees the acknowledgment, the judgment is queued and re-sent on
the next start, and the sink ends up with two rows. There is no dedup key.
"""
import logging
from typing import List, Optional

from pydantic import ValidationError as ModelValidationError

from survey.errors import TransientDeliveryError
from survey.local_state import PendingQueue
from survey.survey_client import SurveyClient
from survey.survey_types import DeliveryOutcome, Judgment

logger = logging.getLogger("survey_sync")


class JudgmentBuffer:
    """In-memory, ordered judgments of the current sitting."""

    def __init__(self) -> None:
        self._items: List[Judgment] = []

    def __len__(self) -> int:
        return len(self._items)

    def enqueue(self, judgment: Judgment) -> None:
        self._items.append(judgment)

    def discard_last(self) -> Optional[Judgment]:
        if not self._items:
            return None
        return self._items.pop()

    def snapshot(self) -> List[Judgment]:
        return list(self._items)

    def take_all(self) -> List[Judgment]:
        items, self._items = self._items, []
        return items

    def restore(self, judgments: List[Judgment]) -> None:
        # put undelivered judgments back in front, keeping enqueue order
        self._items = list(judgments) + self._items


class JudgmentSync:
    def __init__(self, client: SurveyClient, pending: PendingQueue, buffer: Optional[JudgmentBuffer] = None) -> None:
        self.client = client
        self.pending = pending
        self.buffer = buffer if buffer is not None else JudgmentBuffer()

    def enqueue(self, judgment: Judgment) -> None:
        self.buffer.enqueue(judgment)

    async def flush(self) -> List[DeliveryOutcome]:
        """
        Deliver every buffered judgment once, in enqueue order.

        A failed delivery moves that judgment to the pending queue; there is no
        inline retry. The buffer is empty when this returns normally. If
        something other than a delivery failure interrupts the loop (disk
        error, cancellation), the judgments not yet accounted for go back into
        the buffer before the exception propagates.
        """
        batch = self.buffer.take_all()
        outcomes: List[DeliveryOutcome] = []
        done = 0
        try:
            for judgment in batch:
                try:
                    remote_id = await self.client.submit_judgment(judgment)
                    outcomes.append(DeliveryOutcome(judgment, delivered=True, remote_id=remote_id))
                except TransientDeliveryError as e:
                    logger.warning("Delivery failed for item %s, queued for retry: %s", judgment.item_id, e)
                    self.pending.append(judgment)
                    outcomes.append(DeliveryOutcome(judgment, delivered=False))
                done += 1
        except BaseException:
            self.buffer.restore(batch[done:])
            raise

        failed = sum(1 for o in outcomes if not o.delivered)
        if outcomes:
            logger.info("Flushed %d judgments (%d delivered, %d queued)", len(outcomes), len(outcomes) - failed, failed)
        return outcomes

    def park(self) -> int:
        """Move buffered judgments to the pending queue without sending them."""
        batch = self.buffer.take_all()
        for index, judgment in enumerate(batch):
            try:
                self.pending.append(judgment)
            except BaseException:
                self.buffer.restore(batch[index:])
                raise
        if batch:
            logger.info("Parked %d unsent judgments in the pending queue", len(batch))
        return len(batch)

    async def retry_persisted(self) -> List[DeliveryOutcome]:
        """
        Re-send everything in the pending queue, newest first.

        Only confirmed entries are removed; failures stay for the next start.
        The slot is rewritten after every attempt. Entries that no longer
        parse as judgments are left in place and reported in the log.
        """
        total = len(self.pending)
        if total == 0:
            return []

        logger.info("Retrying %d pending judgments", total)
        outcomes: List[DeliveryOutcome] = []
        for index in range(total - 1, -1, -1):
            entry = self.pending.entries()[index]
            try:
                judgment = Judgment.model_validate(entry)
            except ModelValidationError as e:
                logger.warning("Pending entry %d is not a valid judgment, keeping it: %s", index, e)
                continue

            try:
                remote_id = await self.client.submit_judgment(judgment)
            except TransientDeliveryError as e:
                logger.warning("Retry failed for item %s: %s", judgment.item_id, e)
                self.pending.persist()
                outcomes.append(DeliveryOutcome(judgment, delivered=False))
                continue

            self.pending.remove_at(index)
            outcomes.append(DeliveryOutcome(judgment, delivered=True, remote_id=remote_id))

        remaining = len(self.pending)
        if remaining == 0:
            logger.info("All pending judgments delivered")
        else:
            logger.info("Retry finished: %d delivered, %d still pending", total - remaining, remaining)
        return outcomes
