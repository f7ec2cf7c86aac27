import asyncio
import logging
import sys

import httpx

from dexcom_share.config import settings
from dexcom_share.adapters.share_session import ShareSessionManager
from dexcom_share.adapters.share_readings import ShareReadingFetcher
from dexcom_share.domain.errors import RetriesExhausted
from dexcom_share.services.poller import GlucosePoller

# Setup logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def stream(poller: GlucosePoller) -> None:
    async for reading in poller:
        logger.info(
            f"{reading.timestamp.isoformat()} {reading.value} mg/dL ({reading.mmol_l} mmol/L) "
            f"{reading.trend.name} {reading.trend.arrow}"
        )


async def main() -> None:
    logger.info(f"Starting Dexcom Share Daemon (Mode: {settings.DEXCOM_MODE})")

    mode = settings.DEXCOM_MODE.lower()
    poll_config = settings.poll_config()

    if mode == "production":
        if not settings.DEXCOM_ACCOUNT_NAME or not settings.DEXCOM_PASSWORD.get_secret_value():
            logger.error("Missing Dexcom credentials. Set DEXCOM_ACCOUNT_NAME and DEXCOM_PASSWORD.")
            sys.exit(1)

        try:
            server = settings.server_config()
        except ValueError as e:
            logger.error(f"Configuration error: {e}")
            sys.exit(1)

        client = httpx.AsyncClient(timeout=settings.DEXCOM_HTTP_TIMEOUT)
        session_manager = ShareSessionManager(
            server,
            client=client,
            max_attempts=settings.DEXCOM_LOGIN_MAX_ATTEMPTS,
        )
        fetcher = ShareReadingFetcher(server, client=client)
        credentials = settings.credentials()

    else:
        logger.info("Running in MOCK mode. Using mock adapters.")
        from dexcom_share.adapters.mocks import MockReadingFetcher, MockSessionManager
        from dexcom_share.domain.session import Credentials

        client = None
        session_manager = MockSessionManager()
        fetcher = MockReadingFetcher()
        credentials = Credentials(account_name="mock", password="mock")

    poller = GlucosePoller(session_manager, fetcher, credentials, config=poll_config)

    try:
        await stream(poller)
    except asyncio.CancelledError:
        logger.info("Daemon stopping...")
    except RetriesExhausted as e:
        logger.error(f"Giving up: {e}")
        sys.exit(1)
    finally:
        if client is not None:
            await client.aclose()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
