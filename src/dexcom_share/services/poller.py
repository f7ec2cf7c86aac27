import asyncio
import logging
import math
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dexcom_share.domain.configuration import PollConfig
from dexcom_share.domain.errors import (
    ConcurrentPollError,
    FetchFailure,
    MalformedReading,
    NoNewReadingYet,
    RetriesExhausted,
)
from dexcom_share.domain.readings import GlucoseReading
from dexcom_share.domain.session import Credentials
from dexcom_share.ports.share import ReadingSourcePort, SessionPort

logger = logging.getLogger(__name__)

# Failures that count against the fetch attempt limit instead of ending next()
RETRYABLE = (FetchFailure, MalformedReading, NoNewReadingYet, RetriesExhausted)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _plural(count: int) -> str:
    return "reading" if count == 1 else "readings"


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0
    if isinstance(error, NoNewReadingYet):
        logger.debug(f"No new reading yet, polling again in {delay:.1f}s (attempt {retry_state.attempt_number})")
    else:
        logger.warning(f"Retrying from error in {delay:.1f}s (attempt {retry_state.attempt_number}): {error}")


class GlucosePoller:
    """
    Turns the Share service into a stream of new readings.

    The poller waits until the next reading should have been uploaded
    (latest reading + poll interval + slack), then polls with backoff until
    something newer than the latest reading shows up. Readings are handed
    out one at a time, oldest first, and each one becomes the new watermark
    as it is returned.

    Only one next() may be pending per poller. read_now() may run while
    next() is suspended in its wait phase.
    """

    def __init__(
        self,
        session_manager: SessionPort,
        fetcher: ReadingSourcePort,
        credentials: Credentials,
        config: Optional[PollConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session_manager = session_manager
        self.fetcher = fetcher
        self.credentials = credentials
        self.config = config or PollConfig()
        self._clock = clock
        self._sleep = sleep
        self._latest: Optional[GlucoseReading] = None
        self._token: Optional[str] = None
        self._login_lock = asyncio.Lock()
        self._pending: deque[GlucoseReading] = deque()
        self._in_flight = False

    @property
    def latest_reading(self) -> Optional[GlucoseReading]:
        return self._latest

    @property
    def has_session(self) -> bool:
        return self._token is not None

    def __aiter__(self) -> "GlucosePoller":
        return self

    async def __anext__(self) -> GlucoseReading:
        return await self.next()

    def wait_hint(self) -> timedelta:
        """Time until the next poll would start. Performs no I/O."""
        if self._latest is None:
            return timedelta(0)
        remaining = self._latest.timestamp + self.config.wait_time - self._clock()
        return max(remaining, timedelta(0))

    async def wait(self) -> timedelta:
        """
        Sleep until the next reading is due.

        Returns the computed difference; zero or negative means no wait was needed.
        """
        if self._latest is None:
            return timedelta(0)

        diff = self._latest.timestamp + self.config.wait_time - self._clock()
        if diff > timedelta(0):
            logger.debug(f"Waiting for {diff}")
            await self._sleep(diff.total_seconds())
        else:
            logger.debug(f"No wait because last reading was {-diff + self.config.wait_time} ago")
        return diff

    async def next(self) -> GlucoseReading:
        """
        Return the next reading newer than the latest one.

        Raises:
            ConcurrentPollError: If another next() is still pending.
            RetriesExhausted: If the fetch attempt limit was reached without a new reading.
        """
        if self._in_flight:
            raise ConcurrentPollError("next() is already in progress on this poller")

        self._in_flight = True
        try:
            while True:
                reading = self._take_pending()
                if reading is not None:
                    return reading

                await self.wait()
                readings = await self._fetch_with_retry()
                logger.debug(f"Got {len(readings)} new {_plural(len(readings))}")
                self._pending.extend(readings)
        finally:
            self._in_flight = False

    async def read_now(self, minutes: Optional[int] = None, max_count: Optional[int] = None) -> list[GlucoseReading]:
        """
        Read readings right away, without waiting or retrying the fetch.

        The newest returned reading becomes the latest reading, so the next
        call to next() waits relative to it.

        Raises:
            ValueError: If minutes or max_count is given and not positive.
        """
        if minutes is None:
            minutes = self.config.read_minutes
        if max_count is None:
            max_count = self.config.read_max_count
        if minutes < 1 or max_count < 1:
            raise ValueError(f"minutes and max_count must be positive, got {minutes} and {max_count}")

        readings = await self._read(minutes=minutes, max_count=max_count)
        if readings:
            logger.debug(f"Read {len(readings)} {_plural(len(readings))}")
            self._latest = readings[-1]
        return readings

    def _take_pending(self) -> Optional[GlucoseReading]:
        while self._pending:
            reading = self._pending.popleft()
            if self._is_new(reading):
                self._latest = reading
                return reading
            logger.debug(f"Skipping {reading.timestamp} because the latest reading is {self._latest.timestamp}")
        return None

    def _is_new(self, reading: GlucoseReading) -> bool:
        return self._latest is None or reading.timestamp > self._latest.timestamp

    def _window(self) -> dict:
        if self._latest is None:
            # Just the most recent reading to establish the watermark
            return {"minutes": self.config.read_minutes, "max_count": 1}

        elapsed = self._clock() - self._latest.timestamp
        # Whole minutes back to and including the watermark reading
        minutes = math.ceil(elapsed / timedelta(minutes=1))
        minutes = min(max(minutes, 1), self.config.max_window_minutes)
        return {"minutes": minutes, "max_count": self.config.read_max_count}

    async def _fetch_with_retry(self) -> list[GlucoseReading]:
        attempts = self.config.fetch_max_attempts
        min_backoff = self.config.retry_min_backoff.total_seconds()
        max_backoff = self.config.retry_max_backoff.total_seconds()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=min_backoff, min=min_backoff, max=max_backoff),
                retry=retry_if_exception_type(RETRYABLE),
                before_sleep=_log_retry,
                sleep=self._sleep,
            ):
                with attempt:
                    readings = await self._read(**self._window())
                    if not readings:
                        raise NoNewReadingYet("No new readings yet")
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(f"Polling gave up after {attempts} attempts: {last_error}")
            raise RetriesExhausted("poll", attempts, last_error) from last_error
        return readings

    async def _read(self, minutes: int, max_count: int) -> list[GlucoseReading]:
        token = await self._ensure_token()
        try:
            readings = await self.fetcher.fetch(token, minutes=minutes, max_count=max_count)
        except (FetchFailure, MalformedReading) as e:
            logger.debug(f"Read error: {e}")
            self._drop_session()
            raise

        return sorted((r for r in readings if self._is_new(r)), key=lambda r: r.timestamp)

    async def _ensure_token(self) -> str:
        # One login at a time; concurrent readers reuse its result
        async with self._login_lock:
            if self._token is None:
                session = await self.session_manager.acquire(self.credentials)
                self._token = session.token
            return self._token

    def _drop_session(self) -> None:
        self._token = None
        self.session_manager.invalidate()
