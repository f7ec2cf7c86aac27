"""Failure taxonomy for the Share client.

Login and fetch failures are retried by the callers that own the retry
policy; only RetriesExhausted (and usage errors) reach application code.
"""

from typing import Optional


class DexcomShareError(Exception):
    """Base class for all errors raised by this package."""


class AuthFailure(DexcomShareError):
    def __init__(self, status_code: Optional[int] = None, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        message = f"Login failed with HTTP {status_code}" if status_code is not None else "Login failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class TransportFailure(DexcomShareError):
    """Network-level failure (connect, timeout, protocol) while logging in."""


class FetchFailure(DexcomShareError):
    def __init__(self, status_code: Optional[int] = None, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        message = f"Reading fetch failed with HTTP {status_code}" if status_code is not None else "Reading fetch failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MalformedReading(DexcomShareError):
    """A record returned by the service could not be normalised."""


class NoNewReadingYet(DexcomShareError):
    """Internal signal: a poll cycle found nothing newer than the watermark."""


class RetriesExhausted(DexcomShareError):
    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException] = None):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} gave up after {attempts} attempt(s): {last_error}")


class ConcurrentPollError(DexcomShareError):
    """next() was called while another next() on the same poller is in flight."""
