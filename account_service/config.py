"""Configuration management and validation using Pydantic."""

import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    """Application configuration settings loaded from environment variables or .env files."""

    @staticmethod
    def get_env_file() -> str | None:
        """Determine which .env file to load based on environment variables.

        Returns:
            None if SKIP_ENV_FILE is set (Docker/direct env vars)
            .env.{APP_ENV} file path otherwise (defaults to .env.dev)
        """
        if os.getenv("SKIP_ENV_FILE"):
            return None
        env = os.getenv("APP_ENV", "dev")
        env_file = f".env.{env}"
        if not os.path.exists(env_file):
            raise FileNotFoundError(
                f"Environment file '{env_file}' not found. "
                f"Create it or set APP_ENV to 'dev' or 'production'."
            )
        return env_file

    model_config = SettingsConfigDict(
        env_file=get_env_file.__func__(),
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # ==================== Application Settings ====================
    APP_NAME: str = "Account Service"
    APP_ENV: str = "dev"
    BASE_URL: str = "http://localhost:8000"  # Public origin used in verification links
    DB_URL: str  # Required, defined in .env files

    # ==================== Database Connection Pooling ====================
    DB_POOL_SIZE: int = 20  # Persistent connections in pool
    DB_MAX_OVERFLOW: int = 10  # Additional connections beyond pool size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for available connection
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour
    DB_QUERY_TIMEOUT: int = 60  # Query execution timeout (seconds)
    DB_CONNECT_TIMEOUT: int = 10  # Connection establishment timeout (seconds)

    # ==================== CORS Settings ====================
    CORS_ORIGINS: str = "http://localhost:3000"  # Comma-separated allowed origins

    # ==================== Bulk Admin Actions ====================
    MAX_BATCH_SIZE: int = 1000
    CHUNK_SIZE: int = 100

    # ==================== Field Validation ====================
    USER_NAME_MAX_LENGTH: int = 100
    USER_EMAIL_MAX_LENGTH: int = 255
    PASSWORD_MAX_BYTES: int = 72  # bcrypt input limit

    # ==================== Sessions ====================
    SESSION_BACKEND: str = "redis"  # "redis" or "memory"
    REDIS_URL: str = "redis://localhost:6379/0"
    SESSION_COOKIE_NAME: str = "session_id"
    SESSION_TTL: int = 7200  # Idle lifetime in seconds (2 hours)
    SESSION_KEY_PREFIX: str = "session"

    # ==================== Email (SMTP) ====================
    SMTP_HOST: str = ""  # Empty disables delivery; links are logged instead
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_SENDER_EMAIL: str = ""
    SMTP_SENDER_NAME: str = "User Management App"
    SMTP_TIMEOUT: int = 10  # Seconds
    EMAIL_DRAIN_TIMEOUT: int = 5  # Max wait for pending deliveries on shutdown

    # ==================== Graceful Shutdown ====================
    GRACEFUL_SHUTDOWN_TIMEOUT: int = 30  # Max wait time for active requests (seconds)

    # ==================== Logging ====================
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_FILE: str | None = "app.log"  # None to disable file logging
    LOG_FORMAT: str = "console"  # "console" for dev, "json" for production

    @field_validator('DB_URL')
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        """Validate that DB_URL is provided and properly formatted."""
        if not v:
            raise ValueError("DB_URL is required but not provided in environment variables")
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DB_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        # The engine is async-only
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @field_validator('SESSION_BACKEND')
    @classmethod
    def validate_session_backend(cls, v: str) -> str:
        """Validate that the session backend is one of the supported stores."""
        v = v.lower()
        if v not in ("redis", "memory"):
            raise ValueError("SESSION_BACKEND must be 'redis' or 'memory'")
        return v

    @field_validator('SESSION_TTL')
    @classmethod
    def validate_session_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("SESSION_TTL must be a positive number of seconds")
        return v

    @property
    def email_enabled(self) -> bool:
        """SMTP delivery is active only when a host is configured."""
        return bool(self.SMTP_HOST)

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    def get_cors_origins(self) -> list[str]:
        """Parse CORS_ORIGINS into a list of allowed origins."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

settings = Settings()
