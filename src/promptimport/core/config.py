# src/promptimport/core/config.py
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # General
    ENV: str = "dev"
    APP_NAME: str = "Prompt Import Service"

    # CivitAI registry
    CIVITAI_API_BASE: str = "https://civitai.com/api/v1"
    CIVITAI_TIMEOUT_S: float = 30.0
    # When disabled no policy object exists and every license is allowed
    CIVITAI_LICENSE_POLICY: bool = True
    CIVITAI_ALLOW_TOS_AUTO_ACCEPT: bool = False
    CIVITAI_ALLOWED_LICENSES: List[str] = []

    # Local model catalog (JSON index, see domain/catalog.py)
    CATALOG_INDEX: str = "./data/catalog.json"

    # Jobs / streaming
    MAX_CONCURRENT_JOBS: int = 4
    STREAM_POLL_INTERVAL_S: float = 0.5

    # Logging
    LOG_DIR: str = "./logs"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

_settings: Settings | None = None

def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
