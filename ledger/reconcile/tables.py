"""
Reconciliation Table Specs

One TableSpec per table reconciliation handles. A spec knows the full
column list a record is inserted with (identifier included, so the record
keeps the id it was exported with) and, for tables that have one, the
update applied when the insert hits a uniqueness conflict.

Tables without an update path (transactions, saving entries, links) are
append-only: a conflicting record is skipped. Key columns compare with IS
so a NULL owner (global category) matches itself.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel

from ledger.models.batch import TableKind

@dataclass(frozen=True)
class TableSpec:
    """How records of one table are inserted and updated."""

    kind: TableKind
    columns: tuple[str, ...]
    key_columns: tuple[str, ...] = ("id",)
    update_columns: tuple[str, ...] = ()
    timestamped: bool = True

    @property
    def table(self) -> str:
        return self.kind.value

    @property
    def has_update(self) -> bool:
        return bool(self.update_columns)

    @property
    def insert_sql(self) -> str:
        placeholders = ", ".join("?" for _ in self.columns)
        return (
            f"INSERT INTO {self.table} ({', '.join(self.columns)}) "
            f"VALUES ({placeholders})"
        )

    @property
    def update_sql(self) -> Optional[str]:
        if not self.has_update:
            return None
        assignments = ", ".join(f"{column} = ?" for column in self.update_columns)
        keys = " AND ".join(f"{column} IS ?" for column in self.key_columns)
        return f"UPDATE {self.table} SET {assignments} WHERE {keys}"

    def values(self, record: BaseModel) -> dict[str, Any]:
        """Column values for a record, in storable form."""
        data = record.model_dump(mode="json")
        if self.timestamped and data.get("created_at") is None:
            data["created_at"] = datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0).isoformat()
        return data

    def insert_params(self, record: BaseModel) -> tuple:
        data = self.values(record)
        return tuple(data.get(column) for column in self.columns)

    def update_params(self, record: BaseModel) -> tuple:
        data = self.values(record)
        return tuple(data[column] for column in self.update_columns) + tuple(
            data[column] for column in self.key_columns
        )


# Updates match on the owner as well, so a conflicting id held by another
# owner is skipped rather than overwritten
OWNED_KEY = ("id", "owner_id")


TABLE_SPECS: dict[TableKind, TableSpec] = {
    TableKind.ACCOUNTS: TableSpec(
        kind=TableKind.ACCOUNTS,
        columns=("id", "owner_id", "name", "type", "currency", "is_active", "created_at"),
        update_columns=("name", "type", "currency", "is_active"),
        key_columns=OWNED_KEY,
    ),
    TableKind.CATEGORIES: TableSpec(
        kind=TableKind.CATEGORIES,
        columns=("id", "owner_id", "name", "kind"),
        update_columns=("name", "kind"),
        key_columns=OWNED_KEY,
        timestamped=False,
    ),
    TableKind.PAY_PERIODS: TableSpec(
        kind=TableKind.PAY_PERIODS,
        columns=("id", "owner_id", "pay_date", "gross_income_cents", "note", "created_at"),
        update_columns=("gross_income_cents", "note"),
        key_columns=OWNED_KEY,
    ),
    TableKind.TRANSACTIONS: TableSpec(
        kind=TableKind.TRANSACTIONS,
        columns=(
            "id", "owner_id", "pay_period_id", "account_id", "category_id", "type",
            "amount_cents", "description", "txn_date", "planned_payment_id",
            "counterparty_user_id", "created_at",
        ),
        key_columns=OWNED_KEY,
    ),
    TableKind.PLANNED_PAYMENTS: TableSpec(
        kind=TableKind.PLANNED_PAYMENTS,
        columns=(
            "id", "owner_id", "account_id", "description", "amount_cents", "due_date",
            "auto_debit", "status", "linked_txn_id", "created_at",
        ),
        update_columns=("status", "linked_txn_id"),
        key_columns=OWNED_KEY,
    ),
    TableKind.SAVING_ENTRIES: TableSpec(
        kind=TableKind.SAVING_ENTRIES,
        columns=(
            "id", "owner_id", "pay_period_id", "account_id", "amount_cents",
            "entry_date", "note", "created_at",
        ),
        key_columns=OWNED_KEY,
    ),
    TableKind.SAVING_GOALS: TableSpec(
        kind=TableKind.SAVING_GOALS,
        columns=("id", "owner_id", "name", "target_amount_cents", "target_date", "created_at"),
        update_columns=("name", "target_amount_cents", "target_date"),
        key_columns=OWNED_KEY,
    ),
    TableKind.SAVING_ENTRY_GOALS: TableSpec(
        kind=TableKind.SAVING_ENTRY_GOALS,
        columns=("saving_entry_id", "goal_id"),
        key_columns=("saving_entry_id", "goal_id"),
        timestamped=False,
    ),
}
