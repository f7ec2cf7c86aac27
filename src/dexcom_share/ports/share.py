from typing import Protocol

from dexcom_share.domain.readings import GlucoseReading
from dexcom_share.domain.session import Credentials, Session


class SessionPort(Protocol):
    async def acquire(self, credentials: Credentials) -> Session:
        """
        Log in and return a fresh session.
        Raises RetriesExhausted once the login attempts are used up.
        """
        ...

    def invalidate(self) -> None:
        """
        Forget the current session. The caller drops its cached token.
        """
        ...


class ReadingSourcePort(Protocol):
    async def fetch(self, token: str, minutes: int = 1440, max_count: int = 1) -> list[GlucoseReading]:
        """
        Fetch the latest readings within a lookback window, ascending by timestamp.
        Never retries; raises FetchFailure or MalformedReading.
        """
        ...
