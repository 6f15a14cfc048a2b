"""Typed settings loader for the weather question service."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigError


class LLMConfig(BaseModel):
    """Immutable LLM call parameters handed to the client at construction."""

    model_config = ConfigDict(frozen=True)

    api_url: str
    model: str
    timeout_seconds: float = Field(gt=0)
    max_retries: int = Field(ge=0)
    retry_delay_seconds: float = Field(ge=0)
    temperature_structured: float = 0.1
    temperature_natural: float = 0.7
    max_tokens_structured: int = 500
    max_tokens_natural: int = 300


class RateLimitConfig(BaseModel):
    """Immutable rate-limit window for the ask operation."""

    model_config = ConfigDict(frozen=True)

    max_requests: int = Field(gt=0)
    window_seconds: int = Field(gt=0)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: Literal["dev", "staging", "prod"] = Field(default="dev", alias="APP_ENV")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )

    llm_api_url: str = Field(
        default="https://api.venice.ai/api/v1/chat/completions",
        alias="LLM_API_URL",
    )
    llm_api_key: str | None = Field(default=None, alias="LLM_API_KEY", repr=False)
    llm_model: str = Field(default="zai-org-glm-4.6", alias="LLM_MODEL")
    llm_timeout_seconds: float = Field(default=15.0, alias="LLM_TIMEOUT_SECONDS")
    llm_max_retries: int = Field(default=1, alias="LLM_MAX_RETRIES")
    llm_retry_delay_seconds: float = Field(default=1.0, alias="LLM_RETRY_DELAY_SECONDS")
    llm_temperature_structured: float = Field(default=0.1, alias="LLM_TEMPERATURE_STRUCTURED")
    llm_temperature_natural: float = Field(default=0.7, alias="LLM_TEMPERATURE_NATURAL")
    llm_max_tokens_structured: int = Field(default=500, alias="LLM_MAX_TOKENS_STRUCTURED")
    llm_max_tokens_natural: int = Field(default=300, alias="LLM_MAX_TOKENS_NATURAL")

    database_url: str = Field(default="sqlite:///./data/weather.db", alias="DATABASE_URL")

    rate_limit_max_requests: int = Field(default=5, alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_window_seconds: int = Field(default=86400, alias="RATE_LIMIT_WINDOW_SECONDS")

    max_citations: int = Field(default=10, alias="MAX_CITATIONS")

    journal_dir: Path = Field(default=Path("./data/journal"), alias="JOURNAL_DIR")
    raw_payload_dir: Path = Field(default=Path("./data/raw"), alias="RAW_PAYLOAD_DIR")

    @field_validator("llm_api_key", mode="before")
    @classmethod
    def empty_string_to_none(cls, value: Any) -> Any:
        """Treat an empty env-string API key as unset."""
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @model_validator(mode="after")
    def validate_limits(self) -> Settings:
        """Validate numeric bounds that pydantic field types do not cover."""
        if self.llm_timeout_seconds <= 0:
            raise ValueError("LLM_TIMEOUT_SECONDS must be > 0.")
        if self.llm_max_retries < 0:
            raise ValueError("LLM_MAX_RETRIES must be >= 0.")
        if self.rate_limit_max_requests <= 0:
            raise ValueError("RATE_LIMIT_MAX_REQUESTS must be > 0.")
        if self.rate_limit_window_seconds <= 0:
            raise ValueError("RATE_LIMIT_WINDOW_SECONDS must be > 0.")
        if not 1 <= self.max_citations <= 50:
            raise ValueError("MAX_CITATIONS must be between 1 and 50.")
        if not self.llm_api_url.startswith(("http://", "https://")):
            raise ValueError("LLM_API_URL must be an http(s) URL.")
        return self

    def llm_config(self) -> LLMConfig:
        """Build the frozen LLM configuration value."""
        return LLMConfig(
            api_url=self.llm_api_url,
            model=self.llm_model,
            timeout_seconds=self.llm_timeout_seconds,
            max_retries=self.llm_max_retries,
            retry_delay_seconds=self.llm_retry_delay_seconds,
            temperature_structured=self.llm_temperature_structured,
            temperature_natural=self.llm_temperature_natural,
            max_tokens_structured=self.llm_max_tokens_structured,
            max_tokens_natural=self.llm_max_tokens_natural,
        )

    def rate_limit_config(self) -> RateLimitConfig:
        """Build the frozen rate-limit configuration value."""
        return RateLimitConfig(
            max_requests=self.rate_limit_max_requests,
            window_seconds=self.rate_limit_window_seconds,
        )

    def safe_summary(self) -> dict[str, Any]:
        """Return non-secret settings for startup logging."""
        return {
            "app_env": self.app_env,
            "llm_api_url": self.llm_api_url,
            "llm_model": self.llm_model,
            "llm_api_key_set": bool(self.llm_api_key),
            "llm_timeout_seconds": self.llm_timeout_seconds,
            "llm_max_retries": self.llm_max_retries,
            "database_url": self.database_url,
            "rate_limit_max_requests": self.rate_limit_max_requests,
            "rate_limit_window_seconds": self.rate_limit_window_seconds,
            "max_citations": self.max_citations,
        }


def load_settings() -> Settings:
    """Load and validate settings, raising ConfigError on failure."""
    try:
        settings = Settings()
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed reading environment/.env: {exc}") from exc

    settings.journal_dir.mkdir(parents=True, exist_ok=True)
    settings.raw_payload_dir.mkdir(parents=True, exist_ok=True)
    return settings
