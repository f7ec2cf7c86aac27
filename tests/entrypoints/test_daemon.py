import pytest
import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from dexcom_share.entrypoints.daemon import main, stream
from dexcom_share.adapters.mocks import MockReadingFetcher, MockSessionManager
from dexcom_share.adapters.share_readings import ShareReadingFetcher
from dexcom_share.adapters.share_session import ShareSessionManager
from dexcom_share.domain.configuration import PollConfig, ShareServerConfig
from dexcom_share.domain.errors import RetriesExhausted
from dexcom_share.domain.readings import GlucoseReading, TrendDirection
from dexcom_share.domain.session import Credentials
from dexcom_share.services.poller import GlucosePoller


class TestDaemonMain:
    """Test suite for the daemon main() function."""

    @pytest.fixture
    def server(self):
        return ShareServerConfig()

    @pytest.fixture
    def mock_settings_production(self, server):
        """Mock settings for production mode."""
        with patch("dexcom_share.entrypoints.daemon.settings") as mock:
            mock.DEXCOM_MODE = "production"
            mock.LOG_LEVEL = "INFO"
            mock.DEXCOM_ACCOUNT_NAME = "jane"
            mock.DEXCOM_PASSWORD = MagicMock()
            mock.DEXCOM_PASSWORD.get_secret_value.return_value = "secret"
            mock.DEXCOM_HTTP_TIMEOUT = 10.0
            mock.DEXCOM_LOGIN_MAX_ATTEMPTS = 10
            mock.server_config.return_value = server
            mock.poll_config.return_value = PollConfig()
            mock.credentials.return_value = Credentials(account_name="jane", password="secret")
            yield mock

    @pytest.fixture
    def mock_settings_mock(self):
        """Mock settings for mock mode."""
        with patch("dexcom_share.entrypoints.daemon.settings") as mock:
            mock.DEXCOM_MODE = "mock"
            mock.LOG_LEVEL = "INFO"
            mock.poll_config.return_value = PollConfig()
            yield mock

    @pytest.fixture
    def mock_adapters(self):
        """Mock adapter constructors."""
        with (
            patch("dexcom_share.entrypoints.daemon.ShareSessionManager") as mock_session,
            patch("dexcom_share.entrypoints.daemon.ShareReadingFetcher") as mock_fetcher,
        ):
            mock_session.return_value = MagicMock(spec=ShareSessionManager)
            mock_fetcher.return_value = MagicMock(spec=ShareReadingFetcher)
            yield {"session": mock_session, "fetcher": mock_fetcher}

    @pytest.fixture
    def mock_stream(self):
        with patch("dexcom_share.entrypoints.daemon.stream", new_callable=AsyncMock) as mock:
            mock.side_effect = asyncio.CancelledError()
            yield mock

    @pytest.mark.asyncio
    async def test_main_production_mode_initialization(self, mock_settings_production, mock_adapters, mock_stream, server):
        """Test that production mode wires the adapters with one shared client."""
        await main()

        mock_adapters["session"].assert_called_once()
        session_args = mock_adapters["session"].call_args
        assert session_args.args[0] is server
        assert session_args.kwargs["max_attempts"] == 10

        mock_adapters["fetcher"].assert_called_once()
        fetcher_args = mock_adapters["fetcher"].call_args
        assert fetcher_args.args[0] is server
        assert fetcher_args.kwargs["client"] is session_args.kwargs["client"]
        assert fetcher_args.kwargs["client"].is_closed

        poller = mock_stream.call_args.args[0]
        assert isinstance(poller, GlucosePoller)
        assert poller.credentials.account_name == "jane"

    @pytest.mark.asyncio
    async def test_main_production_missing_credentials(self, mock_settings_production, mock_adapters, mock_stream):
        mock_settings_production.DEXCOM_ACCOUNT_NAME = ""

        with pytest.raises(SystemExit) as exc_info:
            await main()

        assert exc_info.value.code == 1
        mock_adapters["session"].assert_not_called()
        mock_stream.assert_not_called()

    @pytest.mark.asyncio
    async def test_main_production_bad_region(self, mock_settings_production, mock_adapters, mock_stream):
        mock_settings_production.server_config.side_effect = ValueError("Unknown DEXCOM_REGION 'eu'")

        with pytest.raises(SystemExit):
            await main()

        mock_stream.assert_not_called()

    @pytest.mark.asyncio
    async def test_main_mock_mode(self, mock_settings_mock, mock_stream):
        await main()

        poller = mock_stream.call_args.args[0]
        assert isinstance(poller.session_manager, MockSessionManager)
        assert isinstance(poller.fetcher, MockReadingFetcher)

    @pytest.mark.asyncio
    async def test_main_exits_when_retries_exhausted(self, mock_settings_mock, mock_stream):
        mock_stream.side_effect = RetriesExhausted("poll", 1000)

        with pytest.raises(SystemExit) as exc_info:
            await main()

        assert exc_info.value.code == 1


class TestStream:
    @pytest.mark.asyncio
    async def test_logs_each_reading(self, caplog):
        readings = [
            GlucoseReading(value=120, trend=TrendDirection.FLAT, timestamp=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)),
            GlucoseReading(value=135, trend=TrendDirection.SINGLE_UP, timestamp=datetime(2026, 1, 1, 12, 5, tzinfo=timezone.utc)),
        ]

        class FinitePoller:
            def __aiter__(self):
                return self

            async def __anext__(self):
                if not readings:
                    raise StopAsyncIteration
                return readings.pop(0)

        with caplog.at_level("INFO", logger="dexcom_share.entrypoints.daemon"):
            await stream(FinitePoller())

        assert "120 mg/dL" in caplog.text
        assert "SINGLE_UP" in caplog.text
