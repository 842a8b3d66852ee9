from __future__ import annotations

import pytest

from record_counter.config import Settings


def test_settings_defaults() -> None:
    settings = Settings()
    assert settings.dataverse_url == ""
    assert settings.dataverse_api_version == "9.2"
    assert settings.exact_count_page_size == 5000
    assert settings.exact_count_max_pages == 1000
    assert settings.max_repeated_cursors == 3
    assert settings.stored_query_cache_ttl_seconds == 3600


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATAVERSE_URL", "https://org.crm.dynamics.com/")
    monkeypatch.setenv("DATAVERSE_API_VERSION", "v9.1")
    monkeypatch.setenv("EXACT_COUNT_PAGE_SIZE", "250")
    settings = Settings()
    assert settings.dataverse_url == "https://org.crm.dynamics.com"
    assert settings.dataverse_api_version == "9.1"
    assert settings.exact_count_page_size == 250


def test_secret_str_hides_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATAVERSE_ACCESS_TOKEN", "super-secret")
    settings = Settings()
    assert "super-secret" not in str(settings.dataverse_access_token)
    assert settings.dataverse_access_token.get_secret_value() == "super-secret"
