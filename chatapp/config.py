from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Server
    PORT: int = 7860
    LOG_LEVEL: str = "INFO"

    # Flat-file storage locations
    DATA_DIR: Path = Path(".")
    PUBLIC_DIR: Path = Path("public")

    # Chat behaviour
    PRESENCE_WINDOW_SECONDS: int = 120
    CHAT_HISTORY_LIMIT: int = 100
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    @property
    def users_file(self) -> Path:
        return self.DATA_DIR / "users.json"

    @property
    def private_chats_file(self) -> Path:
        return self.DATA_DIR / "private_chats.json"

    @property
    def uploads_dir(self) -> Path:
        return self.PUBLIC_DIR / "uploads"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
