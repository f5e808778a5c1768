from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_USERNAME: Optional[str] = None
    REDIS_PASSWORD: Optional[str] = None
    ENVIRONMENT: str = "development"

    # Signing secret for session tokens and the static client credential
    JWT_SECRET: str
    CLIENT_KEY: str
    ACCESS_TOKEN_TTL_HOURS: int = 24

    GOOGLE_CLIENT_ID: str = ""
    CORS_ORIGIN: str = "http://localhost:3000"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
