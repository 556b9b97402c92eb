"""
Thin async client for the Midgard history endpoints.
It only transports; rate-limit detection and decoding live in the synchronizer.
"""
from datetime import datetime
from typing import Dict, Optional, Tuple

import httpx

from app.core.config import get_settings
from app.core.exceptions import UpstreamRequestError
from app.core.logging_config import get_logger
from app.schemas.series import Interval, SeriesSchema

logger = get_logger("midgard_client")

MAX_COUNT = 400


class MidgardClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        depth_pool: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.MIDGARD_API_URL).rstrip("/")
        self.depth_pool = depth_pool or settings.DEPTH_POOL
        self._client = http_client or httpx.AsyncClient()

    @staticmethod
    def build_params(
        interval: Optional[Interval] = None,
        count: Optional[int] = None,
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
    ) -> Dict[str, str]:
        """Only parameters that are present end up in the query string."""
        params = {}
        if interval is not None:
            params["interval"] = Interval(interval).value
        if count is not None:
            if not 1 <= count <= MAX_COUNT:
                raise ValueError(f"count must be between 1 and {MAX_COUNT}, got {count}")
            params["count"] = str(count)
        if from_time is not None:
            params["from"] = str(int(from_time.timestamp()))
        if to_time is not None:
            params["to"] = str(int(to_time.timestamp()))
        return params

    async def fetch_page(
        self,
        schema: SeriesSchema,
        interval: Optional[Interval] = Interval.HOUR,
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
        count: Optional[int] = MAX_COUNT,
    ) -> Tuple[str, int]:
        """
        Requests one page of a series' history.

        Returns:
            (raw body text, HTTP status code)

        Raises:
            UpstreamRequestError: the request never produced a response
        """
        url = f"{self.base_url}/{schema.upstream_url_path(self.depth_pool)}"
        params = self.build_params(interval, count, from_time, to_time)

        logger.debug("upstream_request", series=schema.id, url=url, params=params)
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as e:
            raise UpstreamRequestError(f"Request to {url} failed: {e}") from e

        return response.text, response.status_code

    async def aclose(self):
        await self._client.aclose()
