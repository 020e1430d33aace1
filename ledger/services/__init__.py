"""Services package."""

from ledger.services.storage import (
    ConstraintViolation,
    DuplicateKeyError,
    ExecuteResult,
    LedgerStore,
    OwnedEntity,
    SQLiteLedgerStore,
    StorageError,
    StoreUnavailable,
)

__all__ = [
    "ConstraintViolation",
    "DuplicateKeyError",
    "ExecuteResult",
    "LedgerStore",
    "OwnedEntity",
    "SQLiteLedgerStore",
    "StorageError",
    "StoreUnavailable",
]
