import logging
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from squad_role_ban.models.tags import TagSetting


class AppSettings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    # Tag Configuration
    tags_settings: List[TagSetting] = Field(
        default_factory=list,
        description="Tag settings as JSON: readable_name, tags (aliases), role_regex.",
    )
    main_command: str = Field("tags", description="Chat command handled by the plugin.")

    # Warning Configuration
    warn_interval: int = Field(
        7, gt=0, description="Seconds between repeated warnings to a violating player."
    )
    help_message_interval: float = Field(
        3.0, ge=0, description="Seconds between lines of a multi-line answer."
    )

    # RCON Bridge Configuration
    rcon_bridge_url: Optional[str] = Field(
        None, description="Base URL of the HTTP bridge that forwards RCON warns."
    )
    rcon_bridge_token: Optional[str] = Field(
        None, description="Bearer token for the RCON bridge."
    )

    # Persistence Configuration
    persistence_enabled: bool = Field(
        False, description="Persist squad tags to Supabase between restarts."
    )
    supabase_url: Optional[str] = Field(None, description="URL for the Supabase project.")
    supabase_key: Optional[str] = Field(None, description="Key for the Supabase project.")
    supabase_table: str = Field("squad_tags", description="Table holding squad tags.")

    # Logging Configuration
    log_level: str = Field(
        "INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."
    )

    # Pydantic Settings Configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


def load_settings() -> AppSettings:
    """Loads and validates application settings."""
    try:
        settings = AppSettings()
        log_level_upper = settings.log_level.upper()
        # Validate log_level even if loaded from .env
        if log_level_upper not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            logging.warning(
                f"Invalid LOG_LEVEL '{settings.log_level}' found in .env or default. Using INFO."
            )
            settings.log_level = "INFO"
        else:
            settings.log_level = log_level_upper
        return settings
    except Exception as e:
        logging.exception(f"Error loading application settings: {e}")
        raise SystemExit("Failed to load application settings. Exiting.")


settings: AppSettings = load_settings()
