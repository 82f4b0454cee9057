from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "hirelane-api"
    environment: str = "dev"
    store_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    database_command_timeout_seconds: float = 15.0
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    supabase_service_key: str | None = None
    storage_bucket: str = "resumes"
    auth_timeout_seconds: float = 5.0
    auth_read_retries: int = 2
    auth_retry_base_seconds: float = 0.2
    realtime_channel: str = "hirelane_changes"
    realtime_queue_size: int = 256
    realtime_reconnect_delay_seconds: float = 1.0
    otel_enabled: bool = True
    otel_service_name: str = "hirelane-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="HL_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
