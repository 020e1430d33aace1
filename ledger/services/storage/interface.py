"""
Abstract Storage Interface

DESIGN DECISION: Every component receives the store it works against as a
constructor argument. There is no module-level connection. This allows us to:
1. Run several isolated ledgers in one process
2. Use an in-memory SQLite store for testing
3. Swap the backend without changing business logic

The interface is intentionally small - we're not building an ORM.
Parameterized reads and writes, one explicit atomic-unit scope, and the
ownership check every cross-entity write goes through.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from ledger.errors import LedgerError


Row = dict[str, Any]


class OwnedEntity(str, Enum):
    """Entities that carry an owner, named by their table."""
    ACCOUNT = "accounts"
    CATEGORY = "categories"
    PAY_PERIOD = "pay_periods"
    TRANSACTION = "transactions"
    PLANNED_PAYMENT = "planned_payments"
    SAVING_ENTRY = "saving_entries"
    SAVING_GOAL = "saving_goals"


@dataclass(frozen=True)
class ExecuteResult:
    """Outcome of a write statement."""

    rowcount: int
    last_row_id: Optional[int] = None


class LedgerStore(ABC):
    """
    Abstract interface for ledger storage.

    Any storage implementation (SQLite, PostgreSQL, etc.)
    must implement these methods.

    Statements use qmark ("?") placeholders. Rows come back as plain dicts
    keyed by column name.
    """

    @abstractmethod
    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Row]:
        """
        Run a query and return its first row.

        Returns:
            The row, or None when the query matched nothing

        Raises:
            StoreUnavailable: If the backend failed
        """
        pass

    @abstractmethod
    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        """
        Run a query and return every row.

        Raises:
            StoreUnavailable: If the backend failed
        """
        pass

    @abstractmethod
    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
        """
        Run a write statement.

        Outside a transaction() scope the statement commits on its own.

        Raises:
            DuplicateKeyError: If a primary key or unique constraint rejected the row
            ConstraintViolation: If any other integrity constraint rejected the row
            StoreUnavailable: If the backend failed
        """
        pass

    @abstractmethod
    def transaction(self, rollback: bool = False) -> AbstractAsyncContextManager["LedgerStore"]:
        """
        Open an atomic unit.

        Everything executed inside the scope commits together when it exits
        normally and rolls back when it raises. With rollback=True the unit
        is always rolled back, which lets a caller observe what a write would
        do without keeping it.

        Usage:
            async with store.transaction() as tx:
                await tx.execute(...)
        """
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the backend answers a trivial query."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the backend connection."""
        pass

    # =========================================================================
    # Helpers built on the primitives above
    # =========================================================================

    async def scalar(self, sql: str, params: Sequence[Any] = (), default: Any = None) -> Any:
        """Return the first column of the first row, or default."""
        row = await self.fetch_one(sql, params)
        if row is None:
            return default
        value = next(iter(row.values()))
        return default if value is None else value

    async def exists(self, table: str, entity_id: int) -> bool:
        """Check whether a row with this id exists in a table."""
        row = await self.fetch_one(
            f"SELECT 1 AS found FROM {table} WHERE id = ?",
            (entity_id,),
        )
        return row is not None

    async def owns(self, entity: OwnedEntity, entity_id: int, owner_id: int) -> bool:
        """
        Ownership check used before any cross-entity write.

        For categories this answers "may the owner use it": global
        categories (owner_id NULL) belong to everyone.

        Args:
            entity: The referenced entity kind
            entity_id: The referenced row
            owner_id: The owner making the reference

        Returns:
            True if the row exists and the owner is entitled to use it
        """
        entity = OwnedEntity(entity)
        if entity == OwnedEntity.CATEGORY:
            sql = (
                "SELECT 1 AS found FROM categories "
                "WHERE id = ? AND (owner_id IS NULL OR owner_id = ?)"
            )
        else:
            sql = f"SELECT 1 AS found FROM {entity.value} WHERE id = ? AND owner_id = ?"
        row = await self.fetch_one(sql, (entity_id, owner_id))
        return row is not None


class StorageError(LedgerError):
    """Base exception for storage operations."""

    code = "storage_error"


class StoreUnavailable(StorageError):
    """The backend failed for reasons unrelated to the request's content."""

    code = "store_unavailable"
    retryable = True


class DuplicateKeyError(StorageError):
    """A primary key or unique constraint rejected the row."""

    code = "duplicate_key"


class ConstraintViolation(StorageError):
    """A foreign key, check or not-null constraint rejected the row."""

    code = "constraint_violation"
