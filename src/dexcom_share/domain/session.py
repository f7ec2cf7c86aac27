from datetime import datetime, timezone
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    account_name: str = Field(
        validation_alias=AliasChoices("account_name", "accountName", "username", "userName"),
    )
    password: SecretStr
    # None means "use the application id of the server config"
    application_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("application_id", "applicationId"),
    )


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    obtained_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
