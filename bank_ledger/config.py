"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


SUPPORTED_DATABASE_SCHEMES = ("memory://", "sqlite://", "postgresql://", "postgres://")


class LedgerConfig(BaseSettings):
    """Bank ledger configuration"""

    # Database configuration
    database_url: str = "sqlite:///bank_ledger.db"  # Default SQLite
    sqlite_busy_timeout_ms: int = 5000
    postgres_pool_size: int = 10  # Max pooled connections, one per concurrent unit of work

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_expiry_hours: int = 24
    jwt_algorithm: str = "HS256"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Transfer engine configuration
    transfer_max_retries: int = 5
    transfer_retry_backoff_ms: int = 20

    # Bootstrap
    seed_on_startup: bool = False

    model_config = SettingsConfigDict(
        env_prefix="BANK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config


def validate_config(settings: LedgerConfig) -> List[str]:
    """
    Check a configuration for values that work but are unsafe or suspicious.

    Returns:
        List of human-readable warnings (empty when nothing looks wrong)
    """
    warnings = []

    if len(settings.jwt_secret) < 32:
        warnings.append("jwt_secret should be at least 32 characters long")

    if not settings.database_url.startswith(SUPPORTED_DATABASE_SCHEMES):
        warnings.append(
            f"database_url should start with one of {', '.join(SUPPORTED_DATABASE_SCHEMES)}"
        )

    if settings.postgres_pool_size < 1:
        warnings.append("postgres_pool_size must be at least 1")

    if settings.transfer_max_retries < 1:
        warnings.append("transfer_max_retries below 1 disables transfers entirely")

    if settings.log_format not in ("json", "text"):
        warnings.append(f"Unknown log_format '{settings.log_format}', falling back to json")

    return warnings
