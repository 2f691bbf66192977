"""Configuration management."""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_DIR = PACKAGE_DIR.parent


class Settings(BaseSettings):
    """Application settings."""

    # Storage
    data_dir: Path = Field(default=PROJECT_DIR / "data", alias="DATA_DIR")
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    media_dir: Optional[Path] = Field(default=None, alias="MEDIA_DIR")

    # Feed configuration sources
    feeds_path: Optional[Path] = Field(default=None, alias="FEEDS_PATH")
    user_profiles_path: Optional[Path] = Field(default=None, alias="USER_PROFILES_PATH")
    system_profiles_path: Path = Field(
        default=PROJECT_DIR / "res" / "profiles.ini", alias="SYSTEM_PROFILES_PATH"
    )

    # Application
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")
    development: bool = Field(default=False, alias="DEVELOPMENT")

    # HTTP
    http_timeout: float = Field(default=30.0, alias="HTTP_TIMEOUT")
    http_connect_timeout: float = Field(default=10.0, alias="HTTP_CONNECT_TIMEOUT")
    http_retries: int = Field(default=3, alias="HTTP_RETRIES")
    user_agent: str = Field(default="Feed-Aggregator/1.0", alias="USER_AGENT")

    # Processing
    max_concurrent_updates: int = Field(default=5, alias="MAX_CONCURRENT_UPDATES")
    fetch_favicons: bool = Field(default=True, alias="FETCH_FAVICONS")
    reader_mode: bool = Field(default=True, alias="READER_MODE")
    result_limit: int = Field(default=30, alias="RESULT_LIMIT")

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True

    @field_validator("database_url", "log_file", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        """Convert empty strings to None for optional fields."""
        if v == "" or v is None:
            return None
        return v

    def get_database_url(self) -> str:
        """Return the database URL, defaulting to a SQLite file in the data dir."""
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.data_dir / 'data.sqlite'}"

    def get_media_dir(self) -> Path:
        return self.media_dir or self.data_dir / "media"

    def get_feeds_path(self) -> Path:
        return self.feeds_path or self.data_dir / "feeds.ini"

    def get_user_profiles_path(self) -> Path:
        return self.user_profiles_path or self.data_dir / "profiles.ini"


settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
