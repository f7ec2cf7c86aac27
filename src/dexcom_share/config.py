from datetime import timedelta
from typing import Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from dexcom_share.domain.configuration import (
    DEFAULT_AGENT,
    DEFAULT_APPLICATION_ID,
    REGION_HOSTS,
    PollConfig,
    ShareServerConfig,
)
from dexcom_share.domain.session import Credentials


class Settings(BaseSettings):
    # General
    LOG_LEVEL: str = "INFO"
    DEXCOM_MODE: str = "production"

    # Account
    DEXCOM_ACCOUNT_NAME: str = ""
    DEXCOM_PASSWORD: SecretStr = SecretStr("")
    DEXCOM_APPLICATION_ID: str = DEFAULT_APPLICATION_ID

    # Server
    DEXCOM_REGION: str = "us"
    DEXCOM_BASE_URL: Optional[str] = None  # overrides the region host
    DEXCOM_AGENT: str = DEFAULT_AGENT
    DEXCOM_HTTP_TIMEOUT: float = 10.0

    # Polling (seconds)
    DEXCOM_POLL_INTERVAL: int = 300
    DEXCOM_POLL_SLACK: int = 10
    DEXCOM_RETRY_MIN_TIMEOUT: float = 5.0
    DEXCOM_RETRY_MAX_TIMEOUT: float = 300.0
    DEXCOM_FETCH_MAX_ATTEMPTS: int = 1000
    DEXCOM_LOGIN_MAX_ATTEMPTS: int = 10
    DEXCOM_MAX_WINDOW_MINUTES: int = 1440

    # One-shot reads
    DEXCOM_READ_MINUTES: int = 1440
    DEXCOM_READ_MAX_COUNT: int = 1000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def credentials(self) -> Credentials:
        return Credentials(
            account_name=self.DEXCOM_ACCOUNT_NAME,
            password=self.DEXCOM_PASSWORD,
            application_id=self.DEXCOM_APPLICATION_ID,
        )

    def server_config(self) -> ShareServerConfig:
        region = self.DEXCOM_REGION.lower()
        if not self.DEXCOM_BASE_URL and region not in REGION_HOSTS:
            raise ValueError(f"Unknown DEXCOM_REGION '{self.DEXCOM_REGION}'. Must be one of: {', '.join(REGION_HOSTS)}")

        return ShareServerConfig(
            base_url=self.DEXCOM_BASE_URL or REGION_HOSTS[region],
            application_id=self.DEXCOM_APPLICATION_ID,
            agent=self.DEXCOM_AGENT,
        )

    def poll_config(self) -> PollConfig:
        return PollConfig(
            poll_interval_base=timedelta(seconds=self.DEXCOM_POLL_INTERVAL),
            poll_interval_slack=timedelta(seconds=self.DEXCOM_POLL_SLACK),
            retry_min_backoff=timedelta(seconds=self.DEXCOM_RETRY_MIN_TIMEOUT),
            retry_max_backoff=timedelta(seconds=self.DEXCOM_RETRY_MAX_TIMEOUT),
            fetch_max_attempts=self.DEXCOM_FETCH_MAX_ATTEMPTS,
            max_window_minutes=self.DEXCOM_MAX_WINDOW_MINUTES,
            read_minutes=self.DEXCOM_READ_MINUTES,
            read_max_count=self.DEXCOM_READ_MAX_COUNT,
        )


settings = Settings()
