"""Unit tests for client settings."""

import pytest
from pydantic import ValidationError

from churchtools_client.constants import (
    DEFAULT_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
    RATE_LIMIT_TIMEOUT_MS,
)
from churchtools_client.settings import ClientSettings


class TestClientSettings:
    """Tests for ClientSettings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test default values without environment."""
        monkeypatch.delenv("CHURCHTOOLS_BASE_URL", raising=False)
        monkeypatch.delenv("CHURCHTOOLS_LOGIN_TOKEN", raising=False)

        settings = ClientSettings(_env_file=None)

        assert settings.base_url is None
        assert settings.login_token is None
        assert settings.request_timeout_ms == DEFAULT_TIMEOUT_MS
        assert settings.rate_limit_timeout_ms == RATE_LIMIT_TIMEOUT_MS
        assert settings.rate_limit_retry is True
        assert settings.with_credentials is True
        assert settings.enforce_json is False
        assert settings.user_agent == DEFAULT_USER_AGENT

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that CHURCHTOOLS_* variables are read."""
        monkeypatch.setenv("CHURCHTOOLS_BASE_URL", "https://ct.test/")
        monkeypatch.setenv("CHURCHTOOLS_LOGIN_TOKEN", "env-token")
        monkeypatch.setenv("CHURCHTOOLS_PERSON_ID", "42")
        monkeypatch.setenv("CHURCHTOOLS_RATE_LIMIT_RETRY", "false")

        settings = ClientSettings(_env_file=None)

        assert settings.base_url == "https://ct.test"
        assert settings.login_token == "env-token"
        assert settings.person_id == 42
        assert settings.rate_limit_retry is False

    def test_rejects_zero_timeout(self) -> None:
        """Test that request timeouts must be positive."""
        with pytest.raises(ValidationError):
            ClientSettings(_env_file=None, request_timeout_ms=0)

    def test_rejects_empty_user_agent(self) -> None:
        """Test that the user agent cannot be empty."""
        with pytest.raises(ValidationError):
            ClientSettings(_env_file=None, user_agent="")
