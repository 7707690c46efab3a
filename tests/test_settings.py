from __future__ import annotations

import pytest
from pydantic import ValidationError

from itwin_storage_sample.endpoint_client import ClientConfig
from itwin_storage_sample.settings import Settings


def test_settings_load_from_env(monkeypatch) -> None:
    monkeypatch.setenv("ITWIN_TOKEN", "t")
    monkeypatch.setenv("ITWIN_PROJECT_ID", "p")
    monkeypatch.setenv("HTTP_MAX_RETRIES", "5")
    s = Settings()
    assert s.itwin_token == "t"
    assert s.itwin_project_id == "p"
    assert s.http_max_retries == 5
    assert str(s.api_base_url).startswith("https://api.bentley.com")


def test_settings_reject_non_positive_timeout(monkeypatch) -> None:
    monkeypatch.setenv("HTTP_TIMEOUT_SECONDS", "0")
    with pytest.raises(ValidationError):
        Settings()


def test_client_config_from_settings(monkeypatch) -> None:
    monkeypatch.setenv("ITWIN_TOKEN", "abc")
    monkeypatch.setenv("ITWIN_API_BASE_URL", "https://qa-api.bentley.com")
    monkeypatch.setenv("HTTP_RETRY_BACKOFF_SECONDS", "0.25")
    config = ClientConfig.from_settings(Settings())
    assert config.base_url == "https://qa-api.bentley.com"
    assert config.authorization == "Bearer abc"
    assert config.retry_backoff_seconds == 0.25


def test_client_config_requires_token(monkeypatch) -> None:
    monkeypatch.delenv("ITWIN_TOKEN", raising=False)
    with pytest.raises(ValueError):
        ClientConfig.from_settings(Settings(_env_file=None))


def test_authorization_header_kept_verbatim() -> None:
    assert ClientConfig(token="Bearer eyJ0").authorization == "Bearer eyJ0"
    assert ClientConfig(token="  eyJ0 \n").authorization == "Bearer eyJ0"


def test_log_level_is_normalised(monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", " debug ")
    assert Settings(_env_file=None).log_level == "DEBUG"


def test_unknown_log_level_rejected(monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
