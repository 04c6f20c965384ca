from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"

    # Database
    DATABASE_URL: str

    # JWT
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    AUTH_COOKIE_NAME: str = "auth_token"
    COOKIE_SECURE: bool = False

    # CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # Rate limiting (disabled in tests)
    RATE_LIMIT_ENABLED: bool = True

    # Encryption key for integration connection configs (Fernet key)
    ENCRYPTION_KEY: str = ""

    # Share links
    SHARE_LINK_SECRET: Optional[str] = None
    SHARE_LINK_BASE_URL: Optional[str] = None

    # Integration sync
    SCHEDULER_ENABLED: bool = True
    SYNC_POLL_SECONDS: int = 60
    SYNC_MAX_RETRIES: int = 3
    SYNC_BASE_BACKOFF_SECONDS: int = 60
    EXTERNAL_REQUEST_TIMEOUT: float = 30.0

    # History
    DEFAULT_HISTORY_PERIOD: str = "30d"

    def validate_required_secrets(self) -> list[str]:
        """Validate that critical secrets are set. Returns list of errors."""
        errors = []
        if not self.SECRET_KEY or len(self.SECRET_KEY) < 16:
            errors.append("SECRET_KEY must be set and at least 16 characters")
        if not self.DATABASE_URL:
            errors.append("DATABASE_URL must be set")
        if self.ENVIRONMENT == "production":
            if not self.ENCRYPTION_KEY:
                errors.append("ENCRYPTION_KEY must be set in production")
            if not self.SHARE_LINK_SECRET:
                errors.append("SHARE_LINK_SECRET must be set in production")
        return errors

    @property
    def share_link_secret(self) -> str:
        return self.SHARE_LINK_SECRET or self.SECRET_KEY

    @property
    def share_link_base_url(self) -> str:
        return (self.SHARE_LINK_BASE_URL or self.FRONTEND_URL).rstrip("/")

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
