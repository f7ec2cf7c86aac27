import logging
from typing import Optional

import httpx

from dexcom_share.domain.configuration import ShareServerConfig
from dexcom_share.domain.errors import FetchFailure, MalformedReading
from dexcom_share.domain.readings import GlucoseReading, parse_reading

logger = logging.getLogger(__name__)


class ShareReadingFetcher:
    def __init__(
        self,
        server: ShareServerConfig,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.server = server
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def close(self):
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    async def fetch(self, token: str, minutes: int = 1440, max_count: int = 1) -> list[GlucoseReading]:
        """
        Fetch the latest glucose values for the session.

        Failures are not retried here: a failed fetch usually means the
        session has expired, which only the caller can act on.

        Args:
            token: Session id returned by the login endpoint
            minutes: Lookback window
            max_count: Maximum number of records

        Returns:
            Readings sorted ascending by timestamp.

        Raises:
            FetchFailure: On transport errors or a non-2xx status.
            MalformedReading: If any record cannot be parsed.
        """
        client = self._get_client()
        params = {"sessionID": token, "minutes": minutes, "maxCount": max_count}
        headers = {
            "User-Agent": self.server.agent,
            "Accept": self.server.accept,
        }

        logger.debug(f"POST {self.server.latest_glucose_url} (minutes={minutes}, maxCount={max_count})")
        try:
            response = await client.post(self.server.latest_glucose_url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise FetchFailure(detail=str(e)) from e

        if not response.is_success:
            raise FetchFailure(response.status_code, response.text[:200])

        try:
            records = response.json()
        except ValueError as e:
            raise MalformedReading("Readings response is not JSON") from e

        if not isinstance(records, list):
            raise MalformedReading(f"Expected a list of readings, got {type(records).__name__}")

        readings = [parse_reading(record) for record in records]
        readings.sort(key=lambda r: r.timestamp)
        logger.debug(f"Fetched {len(readings)} reading(s)")
        return readings
