from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .headers import FALLBACK_TEXT


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ACCEPT_LANGUAGE_",
        env_file=".env",
        extra="ignore",
    )

    translations_file: Path | None = Field(
        default=None,
        description="'code text' per line source; the built-in greetings when unset",
    )
    fallback_text: str = FALLBACK_TEXT
    path: str = "/"

    # Logging
    environment: str = Field(
        default="development",
        description="'development' for console logs, anything else for JSON",
    )
    log_level: str = "INFO"
    configure_logging: bool = False
