from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "prompt-library-api"
    environment: str = "dev"
    directus_url: str | None = None
    directus_token: str | None = None
    directus_timeout_seconds: float = 10.0
    free_prompt_limit: int = Field(default=3, ge=0)
    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)
    query_timeout_seconds: float = 15.0
    auth_timeout_seconds: float = 5.0
    otel_enabled: bool = True
    otel_service_name: str = "prompt-library-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="PL_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
