from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "estate-scraper"
    environment: str = "dev"
    debug: bool = False
    log_level: str = "INFO"

    redis_url: str = "redis://redis:6379/0"
    database_url: str = "sqlite:///./listings.db"
    output_path: str = "listings.jsonl"

    base_url: str = "https://www.zoopla.co.uk"
    transport_mode: Literal["http", "browser", "hybrid"] = "hybrid"
    browser_headless: bool = True
    block_resources: bool = True
    warm_up: bool = True

    request_timeout_seconds: float = 45.0
    max_fetch_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_jitter_seconds: float = 0.5
    server_error_delay_seconds: float = 0.5
    challenge_timeout_seconds: float = 15.0
    challenge_poll_interval_seconds: float = 1.0

    detail_attempts: int = 2
    detail_retry_delay_seconds: float = 0.4

    page_delay_min_seconds: float = 0.8
    page_delay_max_seconds: float = 2.0
    detail_delay_min_seconds: float = 0.5
    detail_delay_max_seconds: float = 1.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
