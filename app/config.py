"""Application configuration via Pydantic BaseSettings."""
from enum import Enum
from functools import lru_cache
from typing import Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Settings loaded from environment variables and the .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Use PostgreSQL in production, SQLite locally
    DATABASE_URL: str = "sqlite:///./meetingrequests.db"

    ENVIRONMENT: Environment = Environment.DEVELOPMENT
    LOG_LEVEL: str = "INFO"

    CORS_ALLOWED_ORIGINS: str = "*"

    # Attachments
    UPLOAD_DIR: str = "uploaded_files"
    MAX_ATTACHMENTS_PER_REQUEST: int = Field(default=5, ge=1)
    MAX_ATTACHMENT_BYTES: int = Field(default=10 * 1024 * 1024, ge=1)
    ALLOWED_ATTACHMENT_EXTENSIONS: List[str] = [
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        ".txt", ".csv", ".png", ".jpg", ".jpeg",
    ]

    # Listing
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Role name -> capabilities granted by that role
    ROLE_CAPABILITIES: Dict[str, List[str]] = {
        "secadmin": ["approve", "confirm", "announce", "cancel"],
        "EdOffice": ["approve", "cancel"],
        "ManagementOffice": ["confirm", "announce", "cancel"],
    }
    # Identities (emails) granted every capability regardless of roles
    ADMIN_IDENTITIES: List[str] = []

    @field_validator("DATABASE_URL")
    @classmethod
    def _normalize_postgres_scheme(cls, value: str) -> str:
        # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
        if value.startswith("postgres://"):
            return value.replace("postgres://", "postgresql://", 1)
        return value

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ALLOWED_ORIGINS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
