"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MinibankConfig(BaseSettings):
    """minibank service configuration"""

    model_config = SettingsConfigDict(
        env_prefix="MINIBANK_",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Storage configuration
    storage_backend: str = "sqlite"  # memory, sqlite or postgresql
    sqlite_path: str = "minibank.db"

    # PostgreSQL connection, also read from the bare DB_* variables
    db_host: str = Field("db", validation_alias=AliasChoices("MINIBANK_DB_HOST", "DB_HOST"))
    db_user: str = Field("", validation_alias=AliasChoices("MINIBANK_DB_USER", "DB_USER"))
    db_name: str = Field("", validation_alias=AliasChoices("MINIBANK_DB_NAME", "DB_NAME"))
    db_password: str = Field("", validation_alias=AliasChoices("MINIBANK_DB_PASSWORD", "DB_PASSWORD"))
    db_sslmode: str = "disable"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    request_timeout_seconds: float = 30.0

    # Security configuration
    jwt_secret: str = ""  # MINIBANK_JWT_SECRET, required to issue tokens
    jwt_algorithm: str = "HS256"
    jwt_expiry_minutes: int = 15
    password_min_length: int = 8
    account_number_attempts: int = 5

    # scrypt cost parameters
    scrypt_n: int = 16384
    scrypt_r: int = 8
    scrypt_p: int = 1

    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[str] = None  # If None, logs to stderr

    @property
    def postgres_dsn(self) -> str:
        """libpq connection string assembled from the DB_* settings"""
        return (
            f"host={self.db_host} user={self.db_user} dbname={self.db_name} "
            f"password={self.db_password} sslmode={self.db_sslmode}"
        )


# Loaded lazily so importing the package never reads the environment
_config: Optional[MinibankConfig] = None


def get_config() -> MinibankConfig:
    """Get configuration instance, loading it on first use"""
    global _config
    if _config is None:
        _config = MinibankConfig()
    return _config


def reload_config() -> MinibankConfig:
    """Reload configuration from environment"""
    global _config
    _config = MinibankConfig()
    return _config
