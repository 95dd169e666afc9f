"""
Configuration and settings for the company directory backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

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

    # Persistence
    database_backend: Literal["memory", "sql", "firestore"] = Field(
        default="memory", validation_alias="DATABASE_BACKEND"
    )
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")

    # Firebase (identity + Firestore)
    firebase_service_account: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_SERVICE_ACCOUNT"
    )
    firebase_project_id: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_PROJECT_ID"
    )
    firebase_profile_collection: str = Field(
        default="users", validation_alias="FIREBASE_PROFILE_COLLECTION"
    )

    # S3-compatible storage for service images
    storage_bucket: Optional[str] = Field(default=None, validation_alias="STORAGE_BUCKET")
    storage_endpoint: Optional[str] = Field(
        default=None, validation_alias="STORAGE_ENDPOINT"
    )
    storage_region: Optional[str] = Field(default=None, validation_alias="STORAGE_REGION")
    storage_public_base_url: Optional[str] = Field(
        default=None, validation_alias="STORAGE_PUBLIC_BASE_URL"
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, validation_alias="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, validation_alias="AWS_SECRET_ACCESS_KEY"
    )
    max_image_bytes: int = Field(default=5 * 1024 * 1024, validation_alias="MAX_IMAGE_BYTES")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="COMPANYHUB_USE_IN_MEMORY_BACKENDS"
    )

    # HTTP server
    cors_origins: str = Field(default="", validation_alias="CORS_ORIGINS")
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=5000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def effective_database_backend(self) -> str:
        """Resolve which persistence backend to build."""
        if self.use_in_memory_backends:
            return "memory"
        if self.database_backend == "memory" and self.database_url:
            return "sql"
        return self.database_backend


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
