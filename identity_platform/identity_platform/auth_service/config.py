"""
Configuration management for the authentication service
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List, Literal, Optional


class Settings(BaseSettings):
    """Authentication service configuration loaded from environment variables"""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./app.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_TIMEOUT_SECONDS: float = 5.0
    STORE_RETRY_BACKOFF_SECONDS: float = 0.2

    # Credential hashing (scrypt rounds are log2 of the CPU/memory cost N)
    HASH_SCHEME_ROUNDS: int = 16
    HASH_MAX_CONCURRENCY: int = 4

    # Access tokens
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    JWT_ALGORITHM: str = "HS256"
    JWT_SIGNING_KEYS: Dict[str, str] = {"default": "change-this-secret-in-prod-0123456789abcdef"}
    JWT_ACTIVE_KEY_ID: str = "default"

    # Sessions
    SESSION_BACKEND: Literal["sql", "memory"] = "sql"
    SESSION_RETENTION_MINUTES: int = 60 * 24
    SESSION_SWEEP_INTERVAL_SECONDS: int = 300

    # Seeding
    SEED_PASSWORD: Optional[str] = None

    # CORS Configuration
    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )


# Global settings instance
settings = Settings()
