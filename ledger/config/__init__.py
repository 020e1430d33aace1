"""Configuration package."""

from ledger.config.settings import (
    LedgerSettings,
    LoggingSettings,
    Settings,
    StoreSettings,
    get_settings,
)

__all__ = [
    "LedgerSettings",
    "LoggingSettings",
    "Settings",
    "StoreSettings",
    "get_settings",
]
