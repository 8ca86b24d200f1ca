import os
from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # LiveKit
    LIVEKIT_URL: str = ""
    LIVEKIT_API_KEY: str = ""
    LIVEKIT_API_SECRET: str = ""
    LIVEKIT_TOKEN_TTL_MINUTES: int = 15
    ROOM_EMPTY_TIMEOUT: int = 10 * 60
    ROOM_MAX_PARTICIPANTS: int = 10
    OBSERVER_IDENTITY_PREFIX: str = "session-monitor"

    # Web app sessions API (persistence collaborator)
    SESSION_API_URL: str = ""
    SESSION_API_TIMEOUT: float = 10.0

    # Realtime
    DATA_CHANNEL_DEBUG: bool = False
    STATE_PUSH_INTERVAL: float = 1.0

    # General
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    ENV: str = os.getenv("ENV", "development")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def livekit_configured(self) -> bool:
        return bool(self.LIVEKIT_URL and self.LIVEKIT_API_KEY and self.LIVEKIT_API_SECRET)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Ensure .env is loaded once
    load_dotenv(override=False)
    return Settings()
