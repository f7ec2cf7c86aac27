import logging
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

from dexcom_share.domain.readings import GlucoseReading, TrendDirection
from dexcom_share.domain.session import Credentials, Session

logger = logging.getLogger(__name__)

READING_INTERVAL = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MockSessionManager:
    async def acquire(self, credentials: Credentials) -> Session:
        logger.debug("Mock: Issuing session")
        return Session(token=str(uuid.uuid4()))

    def invalidate(self) -> None:
        logger.debug("Mock: Session invalidated")


class MockReadingFetcher:
    """Serves repeatable pseudo-random readings on the 5-minute sensor grid."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow, seed: int = 120):
        self._clock = clock
        self._seed = seed

    async def fetch(self, token: str, minutes: int = 1440, max_count: int = 1) -> list[GlucoseReading]:
        logger.debug(f"Mock: Fetching readings (minutes={minutes}, maxCount={max_count})")

        now = self._clock()
        epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
        latest = epoch + ((now - epoch) // READING_INTERVAL) * READING_INTERVAL
        earliest = now - timedelta(minutes=minutes)

        readings = []
        stamp = latest
        while stamp >= earliest and len(readings) < max_count:
            readings.append(self._reading_at(stamp))
            stamp -= READING_INTERVAL

        readings.reverse()
        return readings

    def _reading_at(self, stamp: datetime) -> GlucoseReading:
        # Same timestamp always yields the same value
        rng = random.Random(int(stamp.timestamp()) + self._seed)
        value = int(rng.uniform(70.0, 180.0))
        trend = rng.choice(
            [
                TrendDirection.FLAT,
                TrendDirection.FORTY_FIVE_UP,
                TrendDirection.FORTY_FIVE_DOWN,
                TrendDirection.SINGLE_UP,
                TrendDirection.SINGLE_DOWN,
            ]
        )
        millis = int(stamp.timestamp() * 1000)
        raw = {"WT": f"Date({millis})", "ST": f"Date({millis})", "Value": value, "Trend": int(trend)}
        return GlucoseReading(value=value, trend=trend, timestamp=stamp, raw=raw)
