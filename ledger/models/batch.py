"""
Import/Export Batch Models

ImportBatch is the container reconciliation consumes: one optional list
of raw records per table. ExportData is what export produces, the same
tables typed with their record models; it feeds back into ImportBatch.
A table that is None was not supplied and is left alone.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ledger.errors import InvalidInput
from ledger.models.records import (
    Account,
    Category,
    PayPeriod,
    PlannedPayment,
    SavingEntry,
    SavingEntryGoal,
    SavingGoal,
    Transaction,
    User,
)
from ledger.models.validation import ValidationIssue


class TableKind(str, Enum):
    """
    Tables handled by reconciliation, in processing order.

    Referenced rows come before the rows that reference them.
    """
    ACCOUNTS = "accounts"
    CATEGORIES = "categories"
    PAY_PERIODS = "pay_periods"
    TRANSACTIONS = "transactions"
    PLANNED_PAYMENTS = "planned_payments"
    SAVING_ENTRIES = "saving_entries"
    SAVING_GOALS = "saving_goals"
    SAVING_ENTRY_GOALS = "saving_entry_goals"


RECORD_MODELS: dict[TableKind, type[BaseModel]] = {
    TableKind.ACCOUNTS: Account,
    TableKind.CATEGORIES: Category,
    TableKind.PAY_PERIODS: PayPeriod,
    TableKind.TRANSACTIONS: Transaction,
    TableKind.PLANNED_PAYMENTS: PlannedPayment,
    TableKind.SAVING_ENTRIES: SavingEntry,
    TableKind.SAVING_GOALS: SavingGoal,
    TableKind.SAVING_ENTRY_GOALS: SavingEntryGoal,
}


class _TableSet(BaseModel):
    """One optional list per table; a table that is None was not supplied."""

    def tables(self) -> Iterator[tuple[TableKind, list]]:
        """Yield the supplied tables in processing order."""
        for kind in TableKind:
            records = getattr(self, kind.value)
            if records is not None:
                yield kind, records

    def record_count(self) -> int:
        return sum(len(records) for _, records in self.tables())


class ImportBatch(_TableSet):
    """
    A full or partial snapshot of one owner's ledger, grouped by table.

    Only the shape is checked here: known table names, each a list of
    objects. Each record is validated against its table's model when it
    is reconciled, so one bad record never rejects the batch.
    """
    model_config = ConfigDict(extra="forbid")

    accounts: Optional[list[dict[str, Any]]] = None
    categories: Optional[list[dict[str, Any]]] = None
    pay_periods: Optional[list[dict[str, Any]]] = None
    transactions: Optional[list[dict[str, Any]]] = None
    planned_payments: Optional[list[dict[str, Any]]] = None
    saving_entries: Optional[list[dict[str, Any]]] = None
    saving_goals: Optional[list[dict[str, Any]]] = None
    saving_entry_goals: Optional[list[dict[str, Any]]] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ImportBatch":
        """
        Build a batch from raw decoded input or from exported data.

        Raises:
            InvalidInput: If the payload is not a mapping of known tables to
                lists of objects
        """
        if isinstance(payload, cls):
            return payload
        if isinstance(payload, ExportData):
            payload = payload.model_dump(mode="json")
        if not isinstance(payload, dict):
            raise InvalidInput(
                "Import data must be an object keyed by table name",
                issues=[ValidationIssue(
                    field="data",
                    issue_type="invalid_type",
                    message=f"Expected an object, got {type(payload).__name__}",
                    severity="error",
                )],
            )
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            issues = ValidationIssue.from_validation_error(e, prefix="data")
            raise InvalidInput(
                f"Import data is malformed ({len(issues)} issue(s))",
                issues=issues,
            ) from e


class ExportData(_TableSet):
    """Exported rows, typed with each table's record model."""

    accounts: list[Account] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    pay_periods: list[PayPeriod] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    planned_payments: list[PlannedPayment] = Field(default_factory=list)
    saving_entries: list[SavingEntry] = Field(default_factory=list)
    saving_goals: list[SavingGoal] = Field(default_factory=list)
    saving_entry_goals: list[SavingEntryGoal] = Field(default_factory=list)


class TableCounts(BaseModel):
    """Per-table reconciliation outcome."""

    inserted: int = 0
    updated: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.skipped


class ReconcileResult(BaseModel):
    """Grand totals plus the per-table breakdown for every table processed."""

    dry_run: bool = False
    probe: bool = False
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    details: dict[str, TableCounts] = Field(default_factory=dict)

    def add(self, kind: TableKind, counts: TableCounts) -> None:
        self.details[kind.value] = counts
        self.inserted += counts.inserted
        self.updated += counts.updated
        self.skipped += counts.skipped


class ExportSnapshot(BaseModel):
    """Everything one owner holds, shaped as reconciliation input."""

    user: User
    exported_at: datetime
    data: ExportData
