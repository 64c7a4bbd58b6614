from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    llm_provider: str = Field(default="openai", validation_alias="LLM_PROVIDER")
    openai_api_key: Optional[str] = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_api_base: Optional[str] = Field(
        default=None, validation_alias="OPENAI_API_BASE"
    )
    llm_model: str = Field(default="gpt-4.1-mini", validation_alias="LLM_MODEL")
    llm_temperature: float = Field(default=0.2, validation_alias="LLM_TEMPERATURE")
    llm_timeout_seconds: float = Field(
        default=30.0, validation_alias="LLM_TIMEOUT_SECONDS"
    )
    request_timeout_seconds: float = Field(
        default=60.0, validation_alias="REQUEST_TIMEOUT_SECONDS"
    )
    tool_timeout_seconds: float = Field(
        default=15.0, validation_alias="TOOL_TIMEOUT_SECONDS"
    )
    tool_max_workers: int = Field(default=4, validation_alias="TOOL_MAX_WORKERS")
    tool_history_limit: int = Field(default=20, validation_alias="TOOL_HISTORY_LIMIT")
    conversation_store: str = Field(
        default="memory", validation_alias="CONVERSATION_STORE"
    )
    conversation_store_path: Optional[str] = Field(
        default=None, validation_alias="CONVERSATION_STORE_PATH"
    )
    conversation_store_ttl_days: int = Field(
        default=30, validation_alias="CONVERSATION_STORE_TTL_DAYS"
    )
    price_primary_url: Optional[str] = Field(
        default=None, validation_alias="PRICE_PRIMARY_URL"
    )
    price_primary_api_key: Optional[str] = Field(
        default=None, validation_alias="PRICE_PRIMARY_API_KEY"
    )
    price_secondary_url: Optional[str] = Field(
        default=None, validation_alias="PRICE_SECONDARY_URL"
    )
    price_secondary_api_key: Optional[str] = Field(
        default=None, validation_alias="PRICE_SECONDARY_API_KEY"
    )
    price_timeout_seconds: float = Field(
        default=10.0, validation_alias="PRICE_TIMEOUT_SECONDS"
    )
    price_random_seed: Optional[int] = Field(
        default=None, validation_alias="PRICE_RANDOM_SEED"
    )
    weather_provider: str = Field(default="mock", validation_alias="WEATHER_PROVIDER")
    weather_api_url: Optional[str] = Field(
        default=None, validation_alias="WEATHER_API_URL"
    )
    weather_api_key: Optional[str] = Field(
        default=None, validation_alias="WEATHER_API_KEY"
    )
    fastapi_port: int = Field(default=8000, validation_alias="FASTAPI_PORT")
    log_path: Optional[str] = Field(default=None, validation_alias="LOG_PATH")

    @field_validator("llm_provider", mode="after")
    @classmethod
    def normalize_llm_provider(cls, value: str) -> str:
        return value.lower() if value else value

    @field_validator("weather_provider", "conversation_store", mode="after")
    @classmethod
    def normalize_provider(cls, value: str) -> str:
        return value.lower() if value else value


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    return AppConfig()
