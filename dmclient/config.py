"""Client settings.

Settings are loaded from environment variables (prefix ``DM_``) with defaults
suitable for a local homeserver.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the messaging client and its storage backends."""

    model_config = SettingsConfigDict(env_prefix="DM_", env_file=".env", extra="ignore")

    # Homeserver
    homeserver_url: str = Field(default="http://localhost:6286")
    request_timeout: float = Field(default=10.0, gt=0)

    # Concurrent deletions issued per batch by delete_messages/clear_messages
    delete_batch_size: int = Field(default=5, ge=1)

    log_level: str = Field(default="INFO")


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Basic logging setup for applications embedding the client."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
