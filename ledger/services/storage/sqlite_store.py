"""
SQLite Storage Implementation

DESIGN DECISION: SQLite is the bundled backend because:
1. No server to run for a personal ledger
2. Real transactions, so execution and per-record reconciliation are atomic
3. CHECK and UNIQUE constraints back up the model validators
4. ':memory:' gives every test its own isolated ledger

TRADEOFFS:
- One writer at a time (BEGIN IMMEDIATE takes the write lock up front,
  other writers wait up to the configured busy timeout)
- Statements run on the event loop thread (they are short and local)

The implementation follows the abstract interface, so we can swap
to PostgreSQL later without changing business logic.
"""

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from datetime import date, datetime
from enum import Enum
from typing import Any, AsyncIterator, Optional, Sequence

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledger.config import StoreSettings, get_settings
from ledger.log import get_logger
from ledger.services.storage.interface import (
    ConstraintViolation,
    DuplicateKeyError,
    ExecuteResult,
    LedgerStore,
    Row,
    StorageError,
    StoreUnavailable,
)


logger = get_logger(__name__)


_CREATED_AT = "TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S', 'now'))"

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT UNIQUE,
    created_at {_CREATED_AT}
);

CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY,
    owner_id INTEGER NOT NULL REFERENCES users(id),
    name TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('cash', 'bank', 'credit', 'savings')),
    currency TEXT NOT NULL DEFAULT 'AUD' CHECK (length(currency) = 3),
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at {_CREATED_AT}
);

CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY,
    owner_id INTEGER REFERENCES users(id),
    name TEXT NOT NULL,
    kind TEXT NOT NULL CHECK (kind IN ('income', 'expense', 'transfer', 'adjustment'))
);

-- NULL owner (global) is matchable: IFNULL folds it onto 0, which no user id takes
CREATE UNIQUE INDEX IF NOT EXISTS ux_categories_owner_name
    ON categories (IFNULL(owner_id, 0), name);

CREATE TABLE IF NOT EXISTS pay_periods (
    id INTEGER PRIMARY KEY,
    owner_id INTEGER NOT NULL REFERENCES users(id),
    pay_date TEXT NOT NULL,
    gross_income_cents INTEGER NOT NULL DEFAULT 0 CHECK (gross_income_cents >= 0),
    note TEXT,
    created_at {_CREATED_AT},
    UNIQUE (owner_id, pay_date)
);

CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY,
    owner_id INTEGER NOT NULL REFERENCES users(id),
    pay_period_id INTEGER REFERENCES pay_periods(id),
    account_id INTEGER NOT NULL REFERENCES accounts(id),
    category_id INTEGER REFERENCES categories(id),
    type TEXT NOT NULL CHECK (type IN ('income', 'expense', 'transfer', 'adjustment')),
    amount_cents INTEGER NOT NULL CHECK (
        (type IN ('income', 'adjustment') AND amount_cents > 0)
        OR (type IN ('expense', 'transfer') AND amount_cents < 0)
    ),
    description TEXT,
    txn_date TEXT NOT NULL,
    planned_payment_id INTEGER,
    counterparty_user_id INTEGER REFERENCES users(id),
    created_at {_CREATED_AT}
);

CREATE TABLE IF NOT EXISTS planned_payments (
    id INTEGER PRIMARY KEY,
    owner_id INTEGER NOT NULL REFERENCES users(id),
    account_id INTEGER REFERENCES accounts(id),
    description TEXT NOT NULL,
    amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
    due_date TEXT NOT NULL,
    auto_debit INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'planned' CHECK (status IN ('planned', 'executed', 'canceled')),
    linked_txn_id INTEGER UNIQUE REFERENCES transactions(id),
    created_at {_CREATED_AT},
    CHECK ((status = 'executed') = (linked_txn_id IS NOT NULL))
);

CREATE TABLE IF NOT EXISTS saving_entries (
    id INTEGER PRIMARY KEY,
    owner_id INTEGER NOT NULL REFERENCES users(id),
    pay_period_id INTEGER REFERENCES pay_periods(id),
    account_id INTEGER NOT NULL REFERENCES accounts(id),
    amount_cents INTEGER NOT NULL CHECK (amount_cents <> 0),
    entry_date TEXT NOT NULL,
    note TEXT,
    created_at {_CREATED_AT}
);

CREATE TABLE IF NOT EXISTS saving_goals (
    id INTEGER PRIMARY KEY,
    owner_id INTEGER NOT NULL REFERENCES users(id),
    name TEXT NOT NULL,
    target_amount_cents INTEGER NOT NULL CHECK (target_amount_cents > 0),
    target_date TEXT NOT NULL,
    created_at {_CREATED_AT}
);

CREATE TABLE IF NOT EXISTS saving_entry_goals (
    saving_entry_id INTEGER NOT NULL REFERENCES saving_entries(id),
    goal_id INTEGER NOT NULL REFERENCES saving_goals(id),
    PRIMARY KEY (saving_entry_id, goal_id)
);

CREATE INDEX IF NOT EXISTS ix_transactions_period ON transactions (pay_period_id);
CREATE INDEX IF NOT EXISTS ix_transactions_owner_date ON transactions (owner_id, txn_date);
CREATE INDEX IF NOT EXISTS ix_planned_owner_due ON planned_payments (owner_id, due_date);
CREATE INDEX IF NOT EXISTS ix_saving_entries_period ON saving_entries (pay_period_id);
CREATE INDEX IF NOT EXISTS ix_saving_entry_goals_goal ON saving_entry_goals (goal_id);
"""


def _adapt(value: Any) -> Any:
    """Convert a parameter to a type sqlite3 binds natively."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return value.replace(microsecond=0, tzinfo=None).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


class SQLiteLedgerStore(LedgerStore):
    """
    Ledger store backed by one SQLite connection.

    Atomic units are serialized per store instance with an asyncio.Lock.
    Statements issued by the task that holds the unit join it; statements
    from any other task wait for the unit to finish.
    """

    def __init__(
        self,
        path: Optional[str] = None,
        settings: Optional[StoreSettings] = None,
    ):
        self._settings = settings or get_settings().store
        self._path = path or self._settings.path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()
        self._unit_task: Optional[asyncio.Task] = None

    @property
    def path(self) -> str:
        return self._path

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self._path,
            timeout=self._settings.busy_timeout_seconds,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def connect(self) -> sqlite3.Connection:
        """
        Open the connection if it is not open yet.

        Opening is retried with exponential backoff; request work never is.

        Raises:
            StoreUnavailable: If the database cannot be opened
        """
        if self._conn is None:
            retrying = Retrying(
                stop=stop_after_attempt(self._settings.connect_attempts),
                wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
                retry=retry_if_exception_type(sqlite3.OperationalError),
                reraise=True,
            )
            try:
                self._conn = retrying(self._open)
            except sqlite3.Error as e:
                logger.error("store_connect_failed", path=self._path, error=str(e))
                raise StoreUnavailable(f"Failed to open ledger store {self._path}: {e}") from e
            logger.debug("store_connected", path=self._path)
        return self._conn

    async def initialize(self) -> None:
        """Create every table and index that does not exist yet."""
        async with self._guard():
            self._call(lambda conn: conn.executescript(SCHEMA))
        logger.info("store_initialized", path=self._path)

    # =========================================================================
    # Statement execution
    # =========================================================================

    def _call(self, fn):
        """Run fn against the connection, translating driver errors."""
        conn = self.connect()
        try:
            return fn(conn)
        except sqlite3.IntegrityError as e:
            message = str(e)
            if "UNIQUE constraint failed" in message:
                raise DuplicateKeyError(message) from e
            raise ConstraintViolation(message) from e
        except sqlite3.ProgrammingError:
            raise
        except (sqlite3.OperationalError, sqlite3.DatabaseError) as e:
            logger.warning("store_unavailable", path=self._path, error=str(e))
            raise StoreUnavailable(str(e)) from e

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        if self._unit_task is not None and self._unit_task is asyncio.current_task():
            yield
            return
        async with self._lock:
            yield

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Row]:
        args = tuple(_adapt(p) for p in params)
        async with self._guard():
            row = self._call(lambda conn: conn.execute(sql, args).fetchone())
        return dict(row) if row is not None else None

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        args = tuple(_adapt(p) for p in params)
        async with self._guard():
            rows = self._call(lambda conn: conn.execute(sql, args).fetchall())
        return [dict(row) for row in rows]

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
        args = tuple(_adapt(p) for p in params)
        async with self._guard():
            cursor = self._call(lambda conn: conn.execute(sql, args))
        return ExecuteResult(rowcount=cursor.rowcount, last_row_id=cursor.lastrowid)

    @asynccontextmanager
    async def transaction(self, rollback: bool = False) -> AsyncIterator["SQLiteLedgerStore"]:
        if self._unit_task is not None and self._unit_task is asyncio.current_task():
            # Nested scope joins the unit that is already open
            yield self
            return

        async with self._lock:
            self._call(lambda conn: conn.execute("BEGIN IMMEDIATE"))
            self._unit_task = asyncio.current_task()
            try:
                yield self
            except BaseException:
                self._unit_task = None
                self._finish(commit=False)
                raise
            self._unit_task = None
            self._finish(commit=not rollback)

    def _finish(self, commit: bool) -> None:
        conn = self.connect()
        if not conn.in_transaction:
            return
        if not commit:
            self._call(lambda c: c.execute("ROLLBACK"))
            return
        try:
            self._call(lambda c: c.execute("COMMIT"))
        except StorageError:
            if conn.in_transaction:
                self._call(lambda c: c.execute("ROLLBACK"))
            raise

    async def ping(self) -> bool:
        try:
            row = await self.fetch_one("SELECT 1 AS ok")
        except StorageError:
            return False
        return row is not None and row["ok"] == 1

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("store_closed", path=self._path)
