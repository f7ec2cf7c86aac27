from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_APPLICATION_ID = "d89443d2-327c-4a6f-89e5-496bbb0317db"
DEFAULT_AGENT = "Dexcom Share/3.0.2.11 CFNetwork/711.2.23 Darwin/14.0.0"

REGION_HOSTS = {
    "us": "https://share1.dexcom.com",
    "ous": "https://shareous1.dexcom.com",
}

LOGIN_PATH = "/ShareWebServices/Services/General/LoginPublisherAccountByName"
LATEST_GLUCOSE_PATH = "/ShareWebServices/Services/Publisher/ReadPublisherLatestGlucoseValues"


class ShareServerConfig(BaseModel):
    """Endpoints and client identity used for every request to the Share service."""

    model_config = ConfigDict(frozen=True)

    base_url: str = REGION_HOSTS["us"]
    application_id: str = DEFAULT_APPLICATION_ID
    agent: str = DEFAULT_AGENT
    accept: str = "application/json"
    content_type: str = "application/json"

    @property
    def login_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{LOGIN_PATH}"

    @property
    def latest_glucose_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{LATEST_GLUCOSE_PATH}"


class PollConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Sensor cadence and the allowance for the upload to reach the cloud
    poll_interval_base: timedelta = timedelta(minutes=5)
    poll_interval_slack: timedelta = timedelta(seconds=10)

    # Exponential backoff bounds between fetch attempts
    retry_min_backoff: timedelta = timedelta(seconds=5)
    retry_max_backoff: timedelta = timedelta(minutes=5)

    fetch_max_attempts: int = Field(default=1000, ge=1)
    max_window_minutes: int = Field(default=1440, ge=1)

    # Defaults for one-shot reads
    read_minutes: int = Field(default=1440, ge=1)
    read_max_count: int = Field(default=1000, ge=1)

    @property
    def wait_time(self) -> timedelta:
        return self.poll_interval_base + self.poll_interval_slack
