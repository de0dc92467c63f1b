"""Configuration management."""

import logging
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Database (PostgreSQL) - constructed from parts
    db_host: str = "localhost"
    db_port: str = "5432"
    db_name: str = "vigil"
    db_user: str = "vigil"
    db_password: str = ""

    @computed_field
    @property
    def database_url(self) -> str:
        """Construct database URL from parts."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # "memory" keeps everything in-process (local dev only)
    store_backend: Literal["postgres", "memory"] = "postgres"

    # Identity
    auth_mode: Literal["firebase", "header"] = "firebase"
    firebase_project_id: str = ""
    firebase_credentials_path: str = ""  # Empty = application default credentials

    # Text completion
    completion_provider: Literal["gemini", "claude"] = "gemini"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-pro"
    claude_model: str = "sonnet"
    completion_timeout_seconds: float = 30.0

    # Push
    push_timeout_seconds: float = 10.0

    # Entitlements (billing mirror keys)
    free_tier_message_limit: int = 30
    premium_product_id: str = "com.hunyhun.aisaint.premium.monthly"
    premium_entitlement_id: str = "Monthly Premium"

    # Chat
    history_limit: int = 50

    # Daily quote dispatcher
    dispatch_schedule: str = "0 * * * *"  # Top of every UTC hour
    dispatch_skip_probability: float = 0.5
    dispatch_strict_dedup: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    internal_token: str = ""
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


# Global settings instance
settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
