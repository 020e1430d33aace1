"""
Storage Services Package

Provides the abstract ledger store interface and its SQLite implementation.
Every component takes the store it works against as a constructor argument.
"""

from ledger.services.storage.interface import (
    ConstraintViolation,
    DuplicateKeyError,
    ExecuteResult,
    LedgerStore,
    OwnedEntity,
    StorageError,
    StoreUnavailable,
)
from ledger.services.storage.sqlite_store import (
    SCHEMA,
    SQLiteLedgerStore,
)

__all__ = [
    # Interface
    "ExecuteResult",
    "LedgerStore",
    "OwnedEntity",
    # Exceptions
    "ConstraintViolation",
    "DuplicateKeyError",
    "StorageError",
    "StoreUnavailable",
    # SQLite implementation
    "SCHEMA",
    "SQLiteLedgerStore",
]
