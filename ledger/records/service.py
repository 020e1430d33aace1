"""
Ledger Records Service

The record management flows around the core: users, accounts,
categories, pay periods, transactions, saving entries and goals.

Every write validates its input first, then checks ownership of every
row it references inside the same atomic unit as the write itself.
A reference to a row the owner may not use is reported as NotFound,
exactly like a reference to a row that does not exist.
"""

from datetime import date
from typing import Any, Optional

from ledger.config import LedgerSettings, get_settings
from ledger.errors import Conflict, InvalidInput, InvalidState, NotFound
from ledger.log import get_logger
from ledger.models.inputs import (
    AccountCreate,
    AccountPatch,
    CategoryCreate,
    PayPeriodUpsert,
    SavingEntryCreate,
    SavingGoalCreate,
    TransactionCreate,
    UserCreate,
)
from ledger.models.records import (
    Account,
    Category,
    PayPeriod,
    SavingEntry,
    SavingEntryGoal,
    SavingGoal,
    Transaction,
    User,
)
from ledger.services.storage import (
    ConstraintViolation,
    DuplicateKeyError,
    LedgerStore,
    OwnedEntity,
)
from ledger.validation import RecordValidator


logger = get_logger(__name__)


USER_COLUMNS = "id, name, email, created_at"
ACCOUNT_COLUMNS = "id, owner_id, name, type, currency, is_active, created_at"
CATEGORY_COLUMNS = "id, owner_id, name, kind"
PAY_PERIOD_COLUMNS = "id, owner_id, pay_date, gross_income_cents, note, created_at"
TRANSACTION_COLUMNS = (
    "id, owner_id, pay_period_id, account_id, category_id, type, amount_cents, "
    "description, txn_date, planned_payment_id, counterparty_user_id, created_at"
)
SAVING_ENTRY_COLUMNS = (
    "id, owner_id, pay_period_id, account_id, amount_cents, entry_date, note, created_at"
)
SAVING_GOAL_COLUMNS = "id, owner_id, name, target_amount_cents, target_date, created_at"

ENTITY_NAMES = {
    OwnedEntity.ACCOUNT: "account",
    OwnedEntity.PAY_PERIOD: "pay_period",
}


class LedgerRecords:
    """
    Create, update, list and delete ledger records.

    Storage constraint failures are mapped to domain errors:
    DuplicateKeyError becomes Conflict, ConstraintViolation becomes InvalidInput.
    """

    def __init__(
        self,
        store: LedgerStore,
        validator: Optional[RecordValidator] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._validator = validator or RecordValidator(settings=self._settings)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _insert(self, tx: LedgerStore, sql: str, params: tuple, entity: str) -> int:
        try:
            result = await tx.execute(sql, params)
        except DuplicateKeyError as e:
            raise Conflict(f"{entity} already exists: {e}") from e
        except ConstraintViolation as e:
            raise InvalidInput(f"{entity} violates a ledger constraint: {e}") from e
        return result.last_row_id

    async def _require_user(self, tx: LedgerStore, user_id: int) -> None:
        if not await tx.exists("users", user_id):
            raise NotFound("user", user_id)

    async def _require_owned(
        self,
        tx: LedgerStore,
        entity: OwnedEntity,
        entity_id: Optional[int],
        owner_id: int,
    ) -> None:
        if entity_id is None:
            return
        if not await tx.owns(entity, entity_id, owner_id):
            name = ENTITY_NAMES[entity]
            raise NotFound(
                name,
                entity_id,
                f"{name.replace('_', ' ').capitalize()} not found or does not belong to user",
            )

    async def _get(self, table: str, columns: str, entity_id: int, model, entity: str):
        row = await self._store.fetch_one(
            f"SELECT {columns} FROM {table} WHERE id = ?",
            (entity_id,),
        )
        if row is None:
            raise NotFound(entity, entity_id)
        return model.model_validate(row)

    # =========================================================================
    # Users
    # =========================================================================

    async def create_user(self, data: Any) -> User:
        """
        Raises:
            InvalidInput: If the record fails validation
            Conflict: If the email is already registered
        """
        record = self._validator.parse(data, UserCreate)
        async with self._store.transaction() as tx:
            user_id = await self._insert(
                tx,
                "INSERT INTO users (name, email) VALUES (?, ?)",
                (record.name, record.email),
                "user",
            )
        logger.info("user_created", user_id=user_id)
        return await self.get_user(user_id)

    async def get_user(self, user_id: int) -> User:
        return await self._get("users", USER_COLUMNS, user_id, User, "user")

    async def list_users(self) -> list[User]:
        rows = await self._store.fetch_all(f"SELECT {USER_COLUMNS} FROM users ORDER BY id")
        return [User.model_validate(row) for row in rows]

    # =========================================================================
    # Accounts
    # =========================================================================

    async def create_account(self, data: Any) -> Account:
        """
        Create an account. A missing currency takes the configured default.

        Raises:
            InvalidInput: If the record fails validation
            NotFound: If the owner does not exist
        """
        record = self._validator.parse(data, AccountCreate)
        currency = record.currency or self._settings.default_currency

        async with self._store.transaction() as tx:
            await self._require_user(tx, record.owner_id)
            account_id = await self._insert(
                tx,
                """
                INSERT INTO accounts (owner_id, name, type, currency, is_active)
                VALUES (?, ?, ?, ?, ?)
                """,
                (record.owner_id, record.name, record.type, currency, record.is_active),
                "account",
            )

        logger.info("account_created", account_id=account_id, owner_id=record.owner_id)
        return await self.get_account(account_id)

    async def get_account(self, account_id: int) -> Account:
        return await self._get("accounts", ACCOUNT_COLUMNS, account_id, Account, "account")

    async def update_account(self, account_id: int, patch: Any) -> Account:
        """
        Apply a field-level patch to an account.

        Fields present and not None overwrite the stored value; the rest
        are left as they are.

        Raises:
            InvalidInput: If the patch is malformed or empty
            NotFound: If the account does not exist
        """
        patch = self._validator.parse(patch, AccountPatch)

        async with self._store.transaction() as tx:
            row = await tx.fetch_one(
                f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE id = ?",
                (account_id,),
            )
            if row is None:
                raise NotFound("account", account_id)
            merged = patch.apply(Account.model_validate(row))
            await tx.execute(
                "UPDATE accounts SET name = ?, currency = ?, is_active = ? WHERE id = ?",
                (merged.name, merged.currency, merged.is_active, account_id),
            )

        logger.info(
            "account_updated",
            account_id=account_id,
            fields=sorted(patch.changes()),
        )
        return merged

    async def list_accounts(self, owner_id: int) -> list[Account]:
        rows = await self._store.fetch_all(
            f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE owner_id = ? ORDER BY created_at, id",
            (owner_id,),
        )
        return [Account.model_validate(row) for row in rows]

    # =========================================================================
    # Categories
    # =========================================================================

    async def create_category(self, data: Any) -> Category:
        """
        Create a personal category, or a global one when owner_id is None.

        Raises:
            InvalidInput: If the record fails validation
            NotFound: If the owner does not exist
            Conflict: If the owner (or the global scope) already has this name
        """
        record = self._validator.parse(data, CategoryCreate)

        async with self._store.transaction() as tx:
            if record.owner_id is not None:
                await self._require_user(tx, record.owner_id)
            existing = await tx.fetch_one(
                "SELECT id FROM categories WHERE owner_id IS ? AND name = ?",
                (record.owner_id, record.name),
            )
            if existing is not None:
                raise Conflict("Category with this name already exists for this user")
            category_id = await self._insert(
                tx,
                "INSERT INTO categories (owner_id, name, kind) VALUES (?, ?, ?)",
                (record.owner_id, record.name, record.kind),
                "category",
            )

        logger.info("category_created", category_id=category_id, owner_id=record.owner_id)
        return Category(id=category_id, **record.model_dump())

    async def list_categories(self, owner_id: Optional[int] = None) -> list[Category]:
        """Global categories, plus the owner's personal ones when owner_id is given."""
        if owner_id is None:
            sql = f"SELECT {CATEGORY_COLUMNS} FROM categories WHERE owner_id IS NULL"
            params: tuple = ()
        else:
            sql = (
                f"SELECT {CATEGORY_COLUMNS} FROM categories "
                "WHERE owner_id IS NULL OR owner_id = ?"
            )
            params = (owner_id,)
        rows = await self._store.fetch_all(sql + " ORDER BY kind, name", params)
        return [Category.model_validate(row) for row in rows]

    # =========================================================================
    # Pay periods
    # =========================================================================

    async def upsert_pay_period(self, data: Any) -> tuple[PayPeriod, bool]:
        """
        Create the pay period for (owner_id, pay_date), or update its
        income and note if it already exists.

        Returns:
            (pay_period, created)

        Raises:
            InvalidInput: If the record fails validation
            NotFound: If the owner does not exist
        """
        record = self._validator.parse(data, PayPeriodUpsert)

        async with self._store.transaction() as tx:
            await self._require_user(tx, record.owner_id)
            existing = await tx.fetch_one(
                "SELECT id FROM pay_periods WHERE owner_id = ? AND pay_date = ?",
                (record.owner_id, record.pay_date),
            )
            await tx.execute(
                """
                INSERT INTO pay_periods (owner_id, pay_date, gross_income_cents, note)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (owner_id, pay_date) DO UPDATE SET
                    gross_income_cents = excluded.gross_income_cents,
                    note = excluded.note
                """,
                (record.owner_id, record.pay_date, record.gross_income_cents, record.note),
            )
            row = await tx.fetch_one(
                f"SELECT {PAY_PERIOD_COLUMNS} FROM pay_periods WHERE owner_id = ? AND pay_date = ?",
                (record.owner_id, record.pay_date),
            )

        created = existing is None
        period = PayPeriod.model_validate(row)
        logger.info(
            "pay_period_upserted",
            pay_period_id=period.id,
            owner_id=period.owner_id,
            created=created,
        )
        return period, created

    async def get_pay_period(self, pay_period_id: int) -> PayPeriod:
        return await self._get(
            "pay_periods", PAY_PERIOD_COLUMNS, pay_period_id, PayPeriod, "pay_period"
        )

    async def list_pay_periods(self, owner_id: int) -> list[PayPeriod]:
        rows = await self._store.fetch_all(
            f"SELECT {PAY_PERIOD_COLUMNS} FROM pay_periods WHERE owner_id = ? ORDER BY pay_date DESC",
            (owner_id,),
        )
        return [PayPeriod.model_validate(row) for row in rows]

    # =========================================================================
    # Transactions
    # =========================================================================

    async def record_transaction(self, data: Any) -> Transaction:
        """
        Record a transaction.

        Raises:
            InvalidInput: If validation fails (including the sign invariant)
            NotFound: If the owner, account, pay period, category or
                counterparty cannot be used by this owner
        """
        record = self._validator.parse(data, TransactionCreate)

        async with self._store.transaction() as tx:
            await self._require_user(tx, record.owner_id)
            await self._require_owned(tx, OwnedEntity.ACCOUNT, record.account_id, record.owner_id)
            await self._require_owned(
                tx, OwnedEntity.PAY_PERIOD, record.pay_period_id, record.owner_id
            )
            if record.category_id is not None and not await tx.owns(
                OwnedEntity.CATEGORY, record.category_id, record.owner_id
            ):
                raise NotFound("category", record.category_id)
            if record.counterparty_user_id is not None and not await tx.exists(
                "users", record.counterparty_user_id
            ):
                raise NotFound("user", record.counterparty_user_id)

            transaction_id = await self._insert(
                tx,
                """
                INSERT INTO transactions
                    (owner_id, pay_period_id, account_id, category_id, type, amount_cents,
                     description, txn_date, planned_payment_id, counterparty_user_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.owner_id,
                    record.pay_period_id,
                    record.account_id,
                    record.category_id,
                    record.type,
                    record.amount_cents,
                    record.description,
                    record.txn_date,
                    record.planned_payment_id,
                    record.counterparty_user_id,
                ),
                "transaction",
            )

        logger.info(
            "transaction_recorded",
            transaction_id=transaction_id,
            owner_id=record.owner_id,
            type=record.type.value,
            amount_cents=record.amount_cents,
        )
        return await self.get_transaction(transaction_id)

    async def get_transaction(self, transaction_id: int) -> Transaction:
        return await self._get(
            "transactions", TRANSACTION_COLUMNS, transaction_id, Transaction, "transaction"
        )

    async def list_transactions(
        self,
        owner_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        pay_period_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Transaction]:
        """Newest first by transaction date, then by creation."""
        sql = f"SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE owner_id = ?"
        params: list[Any] = [owner_id]
        if date_from is not None:
            sql += " AND txn_date >= ?"
            params.append(date_from)
        if date_to is not None:
            sql += " AND txn_date <= ?"
            params.append(date_to)
        if pay_period_id is not None:
            sql += " AND pay_period_id = ?"
            params.append(pay_period_id)
        sql += " ORDER BY txn_date DESC, created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        rows = await self._store.fetch_all(sql, params)
        return [Transaction.model_validate(row) for row in rows]

    async def delete_transaction(self, transaction_id: int) -> None:
        """
        Raises:
            NotFound: If the transaction does not exist
            InvalidState: If an executed planned payment is linked to it
        """
        async with self._store.transaction() as tx:
            if not await tx.exists("transactions", transaction_id):
                raise NotFound("transaction", transaction_id)
            linked = await tx.fetch_one(
                "SELECT id FROM planned_payments WHERE linked_txn_id = ?",
                (transaction_id,),
            )
            if linked is not None:
                raise InvalidState(
                    f"Transaction settles planned payment {linked['id']} and cannot be deleted"
                )
            await tx.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))

        logger.info("transaction_deleted", transaction_id=transaction_id)

    # =========================================================================
    # Savings
    # =========================================================================

    async def add_saving_entry(self, data: Any) -> SavingEntry:
        """
        Record a deposit (positive) or withdrawal (negative).

        Raises:
            InvalidInput: If the record fails validation
            NotFound: If the owner, account or pay period cannot be used by this owner
        """
        record = self._validator.parse(data, SavingEntryCreate)

        async with self._store.transaction() as tx:
            await self._require_user(tx, record.owner_id)
            await self._require_owned(tx, OwnedEntity.ACCOUNT, record.account_id, record.owner_id)
            await self._require_owned(
                tx, OwnedEntity.PAY_PERIOD, record.pay_period_id, record.owner_id
            )
            entry_id = await self._insert(
                tx,
                """
                INSERT INTO saving_entries
                    (owner_id, pay_period_id, account_id, amount_cents, entry_date, note)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.owner_id,
                    record.pay_period_id,
                    record.account_id,
                    record.amount_cents,
                    record.entry_date,
                    record.note,
                ),
                "saving_entry",
            )

        logger.info(
            "saving_entry_added",
            saving_entry_id=entry_id,
            owner_id=record.owner_id,
            amount_cents=record.amount_cents,
        )
        return await self._get(
            "saving_entries", SAVING_ENTRY_COLUMNS, entry_id, SavingEntry, "saving_entry"
        )

    async def list_saving_entries(
        self,
        owner_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[SavingEntry]:
        sql = f"SELECT {SAVING_ENTRY_COLUMNS} FROM saving_entries WHERE owner_id = ?"
        params: list[Any] = [owner_id]
        if date_from is not None:
            sql += " AND entry_date >= ?"
            params.append(date_from)
        if date_to is not None:
            sql += " AND entry_date <= ?"
            params.append(date_to)
        sql += " ORDER BY entry_date DESC, created_at DESC, id DESC"

        rows = await self._store.fetch_all(sql, params)
        return [SavingEntry.model_validate(row) for row in rows]

    # =========================================================================
    # Goals
    # =========================================================================

    async def create_goal(self, data: Any) -> SavingGoal:
        """
        Raises:
            InvalidInput: If validation fails, including a target date in the past
            NotFound: If the owner does not exist
        """
        record = self._validator.parse(data, SavingGoalCreate)

        async with self._store.transaction() as tx:
            await self._require_user(tx, record.owner_id)
            goal_id = await self._insert(
                tx,
                """
                INSERT INTO saving_goals (owner_id, name, target_amount_cents, target_date)
                VALUES (?, ?, ?, ?)
                """,
                (record.owner_id, record.name, record.target_amount_cents, record.target_date),
                "saving_goal",
            )

        logger.info("saving_goal_created", goal_id=goal_id, owner_id=record.owner_id)
        return await self._get(
            "saving_goals", SAVING_GOAL_COLUMNS, goal_id, SavingGoal, "saving_goal"
        )

    async def delete_goal(self, goal_id: int) -> None:
        """
        Raises:
            NotFound: If the goal does not exist
            InvalidState: If saving entries are still linked to it
        """
        async with self._store.transaction() as tx:
            if not await tx.exists("saving_goals", goal_id):
                raise NotFound("saving_goal", goal_id)
            linked = await tx.scalar(
                "SELECT COUNT(*) FROM saving_entry_goals WHERE goal_id = ?",
                (goal_id,),
                default=0,
            )
            if linked:
                raise InvalidState(
                    "Cannot delete goal with linked saving entries. Remove links first."
                )
            await tx.execute("DELETE FROM saving_goals WHERE id = ?", (goal_id,))

        logger.info("saving_goal_deleted", goal_id=goal_id)

    async def link_entry_to_goal(self, saving_entry_id: int, goal_id: int) -> SavingEntryGoal:
        """
        Count a saving entry toward a goal of the same owner.

        Raises:
            NotFound: If the entry is missing, or the goal is missing or
                belongs to another owner
            Conflict: If the entry is already linked to the goal
        """
        async with self._store.transaction() as tx:
            entry = await tx.fetch_one(
                "SELECT id, owner_id FROM saving_entries WHERE id = ?",
                (saving_entry_id,),
            )
            if entry is None:
                raise NotFound("saving_entry", saving_entry_id)
            if not await tx.owns(OwnedEntity.SAVING_GOAL, goal_id, entry["owner_id"]):
                raise NotFound(
                    "saving_goal",
                    goal_id,
                    "Goal not found or does not belong to same user",
                )
            try:
                await tx.execute(
                    "INSERT INTO saving_entry_goals (saving_entry_id, goal_id) VALUES (?, ?)",
                    (saving_entry_id, goal_id),
                )
            except DuplicateKeyError as e:
                raise Conflict("This entry is already linked to this goal") from e

        logger.info("saving_entry_linked", saving_entry_id=saving_entry_id, goal_id=goal_id)
        return SavingEntryGoal(saving_entry_id=saving_entry_id, goal_id=goal_id)

    async def unlink_entry_from_goal(self, saving_entry_id: int, goal_id: int) -> None:
        """
        Raises:
            NotFound: If no such link exists
        """
        async with self._store.transaction() as tx:
            result = await tx.execute(
                "DELETE FROM saving_entry_goals WHERE saving_entry_id = ? AND goal_id = ?",
                (saving_entry_id, goal_id),
            )
            if result.rowcount == 0:
                raise NotFound(
                    "saving_entry_goal",
                    (saving_entry_id, goal_id),
                    "Link not found",
                )

        logger.info("saving_entry_unlinked", saving_entry_id=saving_entry_id, goal_id=goal_id)
