"""
Configuration for CageMatch.
"""

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Application settings, read from CAGEMATCH_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CAGEMATCH_",
        env_file=".env",
        extra="ignore",
    )

    # Database
    mongodb_url: str = Field(default="mongodb://localhost:27017", description="MongoDB connection URL")
    database_name: str = Field(default="cagematch", description="MongoDB database name")

    # Runtime
    environment: str = Field(default="development", description="development or production")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Auth
    jwt_secret: str = Field(default="change-me", description="Secret used to sign access tokens")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_minutes: int = Field(default=60 * 24, gt=0)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # Logging
    log_level: str = Field(default="INFO")
    log_to_file: bool = Field(default=False)

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


class DatabaseConfig(BaseSettings):
    """Collection names and connection tuning."""

    model_config = SettingsConfigDict(
        env_prefix="CAGEMATCH_DB_",
        env_file=".env",
        extra="ignore",
    )

    users_collection: str = "users"
    challenges_collection: str = "challenges"
    connection_timeout: int = Field(default=5, gt=0, description="Server selection timeout in seconds")
    enable_indexes: bool = True


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load application config once per process."""
    return AppConfig()


@lru_cache(maxsize=1)
def get_db_config() -> DatabaseConfig:
    """Load database config once per process."""
    return DatabaseConfig()
