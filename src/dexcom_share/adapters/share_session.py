import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dexcom_share.domain.configuration import ShareServerConfig
from dexcom_share.domain.errors import AuthFailure, RetriesExhausted, TransportFailure
from dexcom_share.domain.session import Credentials, Session

logger = logging.getLogger(__name__)

# Returned instead of an error status when the account/password pair is rejected
NULL_SESSION_ID = "00000000-0000-0000-0000-000000000000"

LOGIN_MAX_ATTEMPTS = 10


class ShareSessionManager:
    """
    Logs in to the Share service.

    Stateless between calls: the poller caches the returned session and
    simply drops it to force a new login.
    """

    def __init__(
        self,
        server: ShareServerConfig,
        client: Optional[httpx.AsyncClient] = None,
        max_attempts: int = LOGIN_MAX_ATTEMPTS,
        timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.server = server
        self.max_attempts = max_attempts
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def close(self):
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    async def acquire(self, credentials: Credentials) -> Session:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=1, min=1),
                retry=retry_if_exception_type((AuthFailure, TransportFailure)),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                sleep=self._sleep,
            ):
                with attempt:
                    logger.debug("Fetching new session token")
                    return await self._authorize(credentials)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(f"Giving up on login after {self.max_attempts} attempts: {last_error}")
            raise RetriesExhausted("login", self.max_attempts, last_error) from last_error

    def invalidate(self) -> None:
        logger.debug("Session invalidated, next poll will log in again")

    async def _authorize(self, credentials: Credentials) -> Session:
        client = self._get_client()
        body = {
            "password": credentials.password.get_secret_value(),
            "applicationId": credentials.application_id or self.server.application_id,
            "accountName": credentials.account_name,
        }
        headers = {
            "User-Agent": self.server.agent,
            "Content-Type": self.server.content_type,
            "Accept": self.server.accept,
        }

        logger.debug(f"POST {self.server.login_url}")
        try:
            response = await client.post(self.server.login_url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise TransportFailure(f"Login request failed: {e}") from e

        if not response.is_success:
            raise AuthFailure(response.status_code, response.text[:200])

        try:
            token = response.json()
        except ValueError as e:
            raise AuthFailure(response.status_code, "Login response is not JSON") from e

        if not isinstance(token, str) or not token or token == NULL_SESSION_ID:
            raise AuthFailure(response.status_code, "Service did not return a session id")

        logger.debug(f"Session ID: {token}")
        return Session(token=token)
