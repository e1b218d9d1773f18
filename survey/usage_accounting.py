# survey/usage_accounting.py

import asyncio
import logging
from typing import Set

from survey.errors import TransientDeliveryError
from survey.survey_client import SurveyClient

logger = logging.getLogger("survey_client")


class UsageAccountant:
    """
    Best-effort usage increments, one detached task per judged item.

    Results are only visible in the log. A failed increment is not retried and
    never reaches the session runner.
    """

    def __init__(self, client: SurveyClient) -> None:
        self.client = client
        self._in_flight: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def record_shown(self, item_id: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._increment(item_id))
        # held until done
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _increment(self, item_id: str) -> None:
        try:
            changes = await self.client.increment_usage(item_id)
        except TransientDeliveryError as e:
            logger.warning("Usage increment failed (ID: %s): %s", item_id, e)
            return
        if changes:
            logger.debug("Usage incremented (ID: %s)", item_id)
        else:
            logger.warning("Usage increment matched no item (ID: %s)", item_id)

    async def drain(self) -> None:
        """Wait for outstanding increments (shutdown, tests)."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
