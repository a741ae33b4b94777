"""Application configuration using environment variables."""
import os
from functools import lru_cache
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./arbiter.db")

    # Server
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Reference data snapshot (bundled file when empty)
    REFERENCE_DATA_PATH: str = os.getenv("REFERENCE_DATA_PATH", "")

    # Turn timeout thresholds
    TURN_NUDGE_AFTER_MINUTES: int = int(os.getenv("TURN_NUDGE_AFTER_MINUTES", "120"))
    TURN_SKIP_AFTER_MINUTES: int = int(os.getenv("TURN_SKIP_AFTER_MINUTES", "240"))
    AUTO_SKIP_GRACE_MINUTES: int = int(os.getenv("AUTO_SKIP_GRACE_MINUTES", "30"))

    # Status payloads
    RECENT_EVENTS_LIMIT: int = int(os.getenv("RECENT_EVENTS_LIMIT", "5"))


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
