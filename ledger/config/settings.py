"""
Configuration Management for Wallet Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here: the store location and timeouts,
the ledger conventions (pay period length, default currency, import
limits) and logging output.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Ledger store configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="LEDGER_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    path: str = Field(
        default="ledger.db",
        description="SQLite database file (':memory:' for a private in-process store)"
    )
    busy_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=120.0,
        description="How long a write waits for another writer's lock"
    )
    connect_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts made when opening the store connection"
    )


class LedgerSettings(BaseSettings):
    """
    Ledger conventions.
    
    The pay period window and currency default apply to every owner.
    """
    
    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    pay_period_days: int = Field(
        default=14,
        ge=1,
        le=62,
        description="Length of the half-open window starting at a pay date"
    )
    default_currency: str = Field(
        default="AUD",
        min_length=3,
        max_length=3,
        description="Currency used when an account is created without one"
    )
    max_import_records: int = Field(
        default=50000,
        ge=1,
        description="Largest batch accepted by reconciliation"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="How many days in the future a transaction date can be before it is flagged"
    )
    
    @field_validator('default_currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        """Currency codes are stored upper case."""
        if not v.isalpha():
            raise ValueError(f"Currency must be a 3-letter code: {v}")
        return v.upper()


class LoggingSettings(BaseSettings):
    """Structured logging configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="LEDGER_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    level: str = Field(
        default="INFO",
        description="Minimum log level"
    )
    render_json: bool = Field(
        default=True,
        description="Render JSON lines (False renders human-readable console output)"
    )
    
    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.
    
    Aggregates all sub-settings for easy access.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    @property
    def store(self) -> StoreSettings:
        return StoreSettings()
    
    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()
    
    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).
    
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()
