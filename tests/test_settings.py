import pytest
from pydantic import ValidationError

from chat_client.settings import Settings


def test_defaults(settings):
    assert settings.chat_base_url == "http://localhost:8080"
    assert settings.completions_url() == "http://localhost:8080/v1/chat/completions"
    assert settings.chat_timeout_seconds is None
    assert settings.chat_temperature == 0.35
    assert settings.stream_delimiter == "data:"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("CHAT_BASE_URL", "https://llm.example.com/")
    monkeypatch.setenv("CHAT_COMPLETIONS_PATH", "openai/v1/chat/completions")
    monkeypatch.setenv("CHAT_TIMEOUT_SECONDS", "12.5")
    settings = Settings()
    assert settings.completions_url() == "https://llm.example.com/openai/v1/chat/completions"
    assert settings.chat_timeout_seconds == 12.5


def test_completions_url_override(settings):
    assert settings.completions_url("http://other:1") == "http://other:1/v1/chat/completions"


def test_rejects_non_http_base_url(monkeypatch):
    monkeypatch.setenv("CHAT_BASE_URL", "localhost:8080")
    with pytest.raises(ValidationError):
        Settings()


def test_rejects_non_positive_timeout(monkeypatch):
    monkeypatch.setenv("CHAT_TIMEOUT_SECONDS", "0")
    with pytest.raises(ValidationError):
        Settings()
