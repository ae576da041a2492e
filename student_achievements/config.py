"""
Configuration management for Student Achievements.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Student Achievements")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_workers: int = Field(default=1)

    # Relational store (achievement references, profiles, audit)
    database_url: str = Field(default="sqlite:///./student_achievements.db")

    # Document store (achievement content)
    mongodb_uri: str = Field(default="mongodb://localhost:27017")
    mongodb_db_name: str = Field(default="student_achievements")
    mongodb_collection: str = Field(default="achievements")
    mongodb_timeout_ms: int = Field(default=10000)

    # Security
    secret_key: str = Field(default="your-secret-key-here")
    jwt_algorithm: str = Field(default="HS256")

    # Attachments
    upload_storage_uri: str = Field(default="file://./uploads/achievements")
    upload_url_prefix: str = Field(default="/uploads/achievements")
    max_upload_bytes: int = Field(default=5 * 1024 * 1024)
    allowed_upload_types: str = Field(
        default="application/pdf,image/jpeg,image/jpg,image/png",
        description="Comma-separated list of accepted attachment content types.",
    )

    # Listing
    default_page_size: int = Field(default=10)
    max_page_size: int = Field(default=100)

    # Review
    min_rejection_note_length: int = Field(default=5)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    def allowed_upload_type_list(self) -> List[str]:
        """Parse the configured content types into a list."""
        return [t.strip() for t in self.allowed_upload_types.split(",") if t.strip()]


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
