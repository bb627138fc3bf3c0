# settings.py
import os
from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    # Project
    PROJECT_NAME: str = "FabricAI Sofa Visualizer API"
    API_PREFIX: str = "/api"

    # Security
    JWT_SECRET: str = os.getenv("JWT_SECRET", "super-secret-key")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 60 * 24  # 24h

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite+aiosqlite:///./fabricai.db"  # default local SQLite
    )

    # Gemini (image generation provider)
    GOOGLE_API_KEY: str = os.getenv("GOOGLE_API_KEY", "")
    GEMINI_IMAGE_MODEL: str = "gemini-2.5-flash-image"
    GEMINI_TIMEOUT_MS: int = 120_000
    GENERATION_MAX_ATTEMPTS: int = 3
    GENERATION_RETRY_DELAY: float = 2.0  # seconds, multiplied by the attempt number

    # Admin client. Empty key disables the admin user endpoints.
    ADMIN_SERVICE_KEY: str = os.getenv("ADMIN_SERVICE_KEY", "")
    ADMIN_EMAILS: str = os.getenv("ADMIN_EMAILS", "")

    # Object storage
    MEDIA_DIR: str = os.getenv("MEDIA_DIR", "./media")
    MEDIA_URL: str = "/media"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Catalog
    CATALOG_SEED_DEFAULTS: bool = True

    # Frontend origins (CORS)
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def admin_emails(self) -> List[str]:
        return [e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()]

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the process-wide settings."""
    return settings
