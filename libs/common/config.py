from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "test", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    STORE_TIMEZONE: str = "Asia/Beirut"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./commerce.db"
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Auth / sessions
    # Placeholder secrets keep local/test runs working; real deployments
    # must override them via env.
    JWT_SECRET: str = "test-jwt-secret"
    JWT_ALGORITHM: str = "HS256"
    SESSION_SECRET_KEY: str = "test-session-secret"
    SESSION_COOKIE_NAME: str = "commerce_session"

    # Commerce rules
    MAX_CART_LINE_QUANTITY: int = 99
    DEFAULT_CURRENCY: str = "USD"
    DEFAULT_CITY: str = "Beirut"
    PHONE_PATTERN: str = r"^(\+961|961)?(70|71|03|76|81)\d{6}$"
    PHONE_COUNTRY_PREFIX: str = "961"
    VARIANT_CACHE_TTL_SECONDS: int = 300
    ENFORCE_STOCK_AT_COMMIT: bool = True

    # Rate limiting (slowapi); use a redis:// URI to share limits across workers
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    CHECKOUT_RATE_LIMIT: str = "10/minute"
    CART_RATE_LIMIT: str = "60/minute"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v

    @field_validator("DEFAULT_CURRENCY")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        if len(v) != 3 or not v.isalpha():
            raise ValueError("DEFAULT_CURRENCY must be a 3-letter ISO code")
        return v.upper()

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
