# survey/survey_client.py

import logging
from typing import List, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError as ModelValidationError

from survey.config import HISTORY_LIMIT, SESSION_CAP, SURVEY_BASE_URL
from survey.errors import StorageUnavailable, TransientDeliveryError
from survey.survey_types import Item, Judgment, StoredJudgment

logger = logging.getLogger("survey_client")


class SurveyClient:
    """HTTP client for the item store and judgment sink."""

    def __init__(self, http_client: httpx.AsyncClient, base_url: str = SURVEY_BASE_URL) -> None:
        """
        Args:
            http_client: shared httpx AsyncClient (owned by the caller)
            base_url: server root, e.g. http://localhost:8000
        """
        self._client = http_client
        self.base_url = base_url.rstrip("/")

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransientDeliveryError(f"{method} {path} failed: {e}") from e
        if not response.is_success:
            raise TransientDeliveryError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _body(response: httpx.Response) -> dict:
        # a 2xx with an unreadable body still counts as delivered
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _decode(response: httpx.Response, model, path: str) -> list:
        """
        Parse a JSON array of `model` rows.

        Raises:
            TransientDeliveryError: body is not JSON, not an array, or a row does not validate
        """
        try:
            rows = response.json()
            if not isinstance(rows, list):
                raise ValueError(f"expected a JSON array, got {type(rows).__name__}")
            return [model.model_validate(row) for row in rows]
        except (ValueError, ModelValidationError) as e:
            raise TransientDeliveryError(
                f"{path} returned an unreadable body: {e}",
                status_code=response.status_code,
            ) from e

    async def fetch_batch(self, rater_name: str, limit: int = SESSION_CAP) -> List[Item]:
        """
        One selector batch for this rater. An empty list means the pool is exhausted.

        Raises:
            TransientDeliveryError: network failure, non-2xx or an unreadable body
        """
        response = await self._send(
            "GET",
            "/items",
            params={"random": "true", "raterName": rater_name, "limit": limit},
        )
        items = self._decode(response, Item, "/items")
        logger.debug("Fetched %d items for rater=%s", len(items), rater_name)
        return items

    async def increment_usage(self, item_id: str) -> int:
        response = await self._send("POST", f"/items/{quote(str(item_id), safe='')}/increment-usage")
        return int(self._body(response).get("changes", 0))

    async def submit_judgment(self, judgment: Judgment) -> Optional[int]:
        """
        Deliver one judgment. Returns the id assigned by the sink.

        Raises:
            TransientDeliveryError: network failure or non-2xx
        """
        response = await self._send("POST", "/judgments", json=judgment.to_wire())
        return self._body(response).get("id")

    async def fetch_judgments(
        self,
        rater_name: Optional[str] = None,
        limit: int = HISTORY_LIMIT,
    ) -> List[StoredJudgment]:
        """
        Historical judgments, newest first.

        Raises:
            StorageUnavailable: sink unreachable, non-2xx or an unreadable body
        """
        params: dict = {"limit": limit}
        if rater_name:
            params["raterName"] = rater_name
        try:
            response = await self._send("GET", "/judgments", params=params)
            return self._decode(response, StoredJudgment, "/judgments")
        except TransientDeliveryError as e:
            raise StorageUnavailable(str(e)) from e

    async def fetch_item_stats(self) -> dict:
        """
        Raises:
            TransientDeliveryError: network failure, non-2xx or a body that is not a JSON object
        """
        response = await self._send("GET", "/items/stats")
        try:
            stats = response.json()
        except ValueError as e:
            raise TransientDeliveryError(f"/items/stats returned an unreadable body: {e}") from e
        if not isinstance(stats, dict):
            raise TransientDeliveryError("/items/stats did not return a JSON object")
        return stats
