"""
Academy Configuration Management
Centralized configuration with environment-based settings and secrets management
"""

import logging
from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Development placeholders; production refuses to start with these
_DEV_JWT_SECRET = "dev-jwt-secret-please-set-JWT_SECRET"  # nosec B105
_DEV_STORAGE_SECRET = "dev-storage-secret-please-set-STORAGE_SIGNING_SECRET"  # nosec B105


class Settings(BaseSettings):
    """
    Application settings with environment variable support
    Uses pydantic for validation and type safety
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore")

    # ============================================
    # APPLICATION SETTINGS
    # ============================================
    APP_NAME: str = "Academy"
    APP_VERSION: str = "1.0.0"
    APP_URL: str = Field(default="http://localhost:8000")
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)
    ENABLE_DOCS: bool = Field(default=True)

    # ============================================
    # SECURITY SETTINGS
    # ============================================
    JWT_SECRET: str = Field(default=_DEV_JWT_SECRET)
    JWT_EXPIRATION_HOURS: int = Field(default=24)
    REFRESH_TOKEN_DAYS: int = Field(default=30)
    WEBHOOK_SECRET: Optional[str] = Field(default=None)
    INVITATION_EXPIRY_DAYS: int = Field(default=7)
    AUTH_LINK_EXPIRY_HOURS: int = Field(default=24)
    MIN_PASSWORD_LENGTH: int = Field(default=6)

    # CORS Settings
    ALLOWED_ORIGINS: str = Field(default="http://localhost:3000,http://localhost:8000")

    # ============================================
    # DATABASE SETTINGS
    # ============================================
    DB_HOST: str = Field(default="127.0.0.1")
    DB_PORT: int = Field(default=3306)
    DB_USER: str = Field(default="root")
    DB_PASSWORD: str = Field(default="")
    DB_NAME: str = Field(default="academy")
    DB_POOL_SIZE: int = Field(default=5)
    DB_DISABLE_POOL: bool = Field(default=False)
    AUTO_CREATE_DB: bool = Field(default=False)

    # ============================================
    # EMAIL SETTINGS
    # ============================================
    EMAIL_API_URL: str = Field(default="https://api.resend.com/emails")
    EMAIL_API_KEY: Optional[str] = Field(default=None)
    EMAIL_FROM: str = Field(default="Academy <no-reply@academy.local>")
    EMAIL_TIMEOUT: float = Field(default=10.0)

    # ============================================
    # STORAGE SETTINGS
    # ============================================
    STORAGE_ROOT: str = Field(default="uploads")
    STORAGE_BUCKET: str = Field(default="lesson-resources")
    STORAGE_SIGNING_SECRET: str = Field(default=_DEV_STORAGE_SECRET)
    MAX_UPLOAD_BYTES: int = Field(default=20 * 1024 * 1024)  # 20MB
    SIGNED_URL_TTL: int = Field(default=3600)

    # ============================================
    # VIDEO CDN
    # ============================================
    BUNNY_LIBRARY_ID: str = Field(default="")
    BUNNY_EMBED_HOST: str = Field(default="https://iframe.mediadelivery.net")

    # ============================================
    # RATE LIMITING
    # ============================================
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_AUTH: str = Field(default="10/minute")
    RATE_LIMIT_INVITE: str = Field(default="10/minute")

    # ============================================
    # LOGGING
    # ============================================
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="text")
    LOG_FILE: str = Field(default="logs/academy.log")
    LOG_TO_FILE: bool = Field(default=False)
    LOG_MAX_BYTES: int = Field(default=10485760)  # 10MB
    LOG_BACKUP_COUNT: int = Field(default=5)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.ENVIRONMENT.lower() in ("production", "prod")

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the migration runner"""
        return (
            f"mysql+mysqlconnector://{quote_plus(self.DB_USER)}:{quote_plus(self.DB_PASSWORD)}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    def get_cors_origins(self) -> list:
        """Get CORS origins as list"""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    def validate_secrets(self) -> None:
        """Refuse development placeholders in production"""
        if not self.is_production:
            if self.JWT_SECRET == _DEV_JWT_SECRET:
                logger.warning("JWT_SECRET not set; using development fallback secret")
            return

        missing = []
        if self.JWT_SECRET == _DEV_JWT_SECRET:
            missing.append("JWT_SECRET")
        if self.STORAGE_SIGNING_SECRET == _DEV_STORAGE_SECRET:
            missing.append("STORAGE_SIGNING_SECRET")
        if not self.WEBHOOK_SECRET:
            missing.append("WEBHOOK_SECRET")
        if not self.EMAIL_API_KEY:
            missing.append("EMAIL_API_KEY")
        if missing:
            raise RuntimeError(f"Missing required production settings: {', '.join(missing)}")


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings"""
    return settings
