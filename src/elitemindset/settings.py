from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    host: str = "0.0.0.0"
    port: int = 10000
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_dir: Path = Path("logs")
    service_version: str = "LOCKDOWN-v2"

    transport: Literal["stdio", "sse", "streamable-http"] = "streamable-http"

    # Service URL without trailing slash, used to build absolute image URLs.
    public_origin: str = ""
    images_dir: Path = Path("public/images")

    cors_origins: str = "*"

    lockdown: bool = True
    message_max_chars: int = 140
    response_max_chars: int = 260
    image_mode: Literal["item", "inline", "none"] = "item"
    content_order: Literal["text_first", "image_first"] = "text_first"

    cta_soft_threshold: int | None = 3
    cta_strong_threshold: int | None = 5
    cta_soft_text: str = (
        "✨ Ready for deeper transformation? Visit EliteMindset.ai for "
        "personalized coaching programs."
    )
    cta_strong_text: str = (
        "You keep showing up. Book a private session at EliteMindset.ai and turn "
        "these micro actions into a plan."
    )

    session_max_entries: int = 10_000
    session_ttl_seconds: int | None = 86400  # 24 hours
    session_shards: int = 16

    redis_url: str | None = None
    redis_retry_seconds: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        env_parse_none_str="null",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        if self.message_max_chars < 1 or self.response_max_chars < 1:
            raise ValueError("max chars settings must be at least 1")
        if (
            self.cta_soft_threshold is not None
            and self.cta_strong_threshold is not None
            and self.cta_strong_threshold <= self.cta_soft_threshold
        ):
            raise ValueError("cta_strong_threshold must be greater than cta_soft_threshold")
        if self.session_shards < 1:
            raise ValueError("session_shards must be at least 1")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    return Settings()
