"""Client settings powered by Pydantic BaseSettings."""

from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from churchtools_client.constants import (
    DEFAULT_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
    RATE_LIMIT_TIMEOUT_MS,
)
from churchtools_client.url import trim_trailing_slash


class ClientSettings(BaseSettings):
    """Configuration for one ChurchTools client.

    Every value can come from the environment (prefix `CHURCHTOOLS_`),
    from a `.env` file, or be passed explicitly.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHURCHTOOLS_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str | None = Field(
        default=None, description="Installation URL, e.g. https://demo.church.tools"
    )
    login_token: str | None = Field(
        default=None, description="Long-lived login token used for re-login"
    )
    person_id: int | None = Field(
        default=None, description="Person the login token belongs to"
    )
    request_timeout_ms: Annotated[int, Field(ge=1, le=600_000)] = DEFAULT_TIMEOUT_MS
    rate_limit_timeout_ms: Annotated[int, Field(ge=0, le=3_600_000)] = (
        RATE_LIMIT_TIMEOUT_MS
    )
    rate_limit_retry: bool = Field(
        default=True, description="Wait and retry on 429 Too Many Requests"
    )
    with_credentials: bool = Field(
        default=True, description="Send session cookies with every request"
    )
    load_csrf_for_old_api: bool = Field(
        default=False, description="Keep an anti-forgery token for legacy calls"
    )
    enforce_json: bool = Field(
        default=False, description="Fail requests whose response is not JSON"
    )
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        DEFAULT_USER_AGENT
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        """Store the base URL without trailing slash."""
        if v is None:
            return None
        return trim_trailing_slash(v)


def get_settings() -> ClientSettings:
    """Get a settings instance."""
    return ClientSettings()
