"""
Configuration and settings for the EcoTrack backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Document store (MongoDB preferred, any SQLAlchemy URL otherwise)
    mongodb_uri: Optional[str] = Field(default=None, alias="MONGODB_URI")
    mongodb_database: str = Field(default="ecotrack", alias="MONGODB_DATABASE")
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")

    # Firebase Authentication
    firebase_project_id: Optional[str] = Field(
        default=None, alias="FIREBASE_PROJECT_ID"
    )
    firebase_credentials_path: Optional[str] = Field(
        default=None, alias="GOOGLE_APPLICATION_CREDENTIALS"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, alias="ECOTRACK_USE_IN_MEMORY_BACKENDS"
    )
    # token -> email, only honoured by the static verifier
    dev_auth_tokens: dict[str, str] = Field(
        default_factory=dict, alias="ECOTRACK_DEV_AUTH_TOKENS"
    )

    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=4000, alias="PORT")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
