from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    DATABASE_URL: Optional[str] = None
    DATABASE_NAME: Optional[str] = None

    SERVICE_NAME: str = "customer-api"
    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    PORT: int = 8000


@lru_cache
def get_settings() -> Settings:
    return Settings()
