"""
Data Models Package

This package contains all Pydantic models used by the Wallet Ledger core.
Every record read from or written to the store conforms to these schemas.
"""

from ledger.models.records import (
    Account,
    AccountType,
    Category,
    CategoryKind,
    PayPeriod,
    PlannedPayment,
    PlannedStatus,
    SavingEntry,
    SavingEntryGoal,
    SavingGoal,
    Transaction,
    TransactionType,
    User,
    check_amount_sign,
    expected_sign,
)
from ledger.models.inputs import (
    AccountCreate,
    AccountPatch,
    CategoryCreate,
    ExecutionInput,
    PayPeriodUpsert,
    PlannedPaymentCreate,
    SavingEntryCreate,
    SavingGoalCreate,
    TransactionCreate,
    UserCreate,
)
from ledger.models.batch import (
    ExportData,
    ExportSnapshot,
    ImportBatch,
    ReconcileResult,
    TableCounts,
    TableKind,
)
from ledger.models.summary import (
    GoalProgress,
    PeriodSummary,
    SavingsBreakdown,
    SavingsSummary,
)
from ledger.models.validation import (
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Record models
    "Account",
    "AccountType",
    "Category",
    "CategoryKind",
    "PayPeriod",
    "PlannedPayment",
    "PlannedStatus",
    "SavingEntry",
    "SavingEntryGoal",
    "SavingGoal",
    "Transaction",
    "TransactionType",
    "User",
    "check_amount_sign",
    "expected_sign",
    # Input models
    "AccountCreate",
    "AccountPatch",
    "CategoryCreate",
    "ExecutionInput",
    "PayPeriodUpsert",
    "PlannedPaymentCreate",
    "SavingEntryCreate",
    "SavingGoalCreate",
    "TransactionCreate",
    "UserCreate",
    # Batch models
    "ExportData",
    "ExportSnapshot",
    "ImportBatch",
    "ReconcileResult",
    "TableCounts",
    "TableKind",
    # Summary models
    "GoalProgress",
    "PeriodSummary",
    "SavingsBreakdown",
    "SavingsSummary",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
