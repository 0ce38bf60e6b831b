from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    chat_base_url: str = Field(default="http://localhost:8080", validation_alias="CHAT_BASE_URL")
    chat_completions_path: str = Field(
        default="/v1/chat/completions", validation_alias="CHAT_COMPLETIONS_PATH"
    )
    chat_timeout_seconds: float | None = Field(default=None, validation_alias="CHAT_TIMEOUT_SECONDS")
    chat_temperature: float = Field(default=0.35, validation_alias="CHAT_TEMPERATURE")
    stream_delimiter: str = Field(default="data:", validation_alias="CHAT_STREAM_DELIMITER")

    @field_validator("chat_base_url")
    @classmethod
    def _http_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("CHAT_BASE_URL must start with http:// or https://")
        return value.rstrip("/")

    @field_validator("chat_completions_path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith("/"):
            value = "/" + value
        return value

    @field_validator("chat_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("CHAT_TIMEOUT_SECONDS must be positive")
        return value

    @field_validator("stream_delimiter")
    @classmethod
    def _delimiter_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("CHAT_STREAM_DELIMITER must not be empty")
        return value

    def completions_url(self, base_url: str | None = None) -> str:
        base = (base_url or self.chat_base_url).rstrip("/")
        return f"{base}{self.chat_completions_path}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
