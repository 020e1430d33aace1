"""
Ledger Record Models

One model per stored entity. The same models describe rows read back
from the store, rows written by export, and records supplied to
reconciliation, so every path agrees on field names and invariants.

CRITICAL: Money is integer cents. Transactions carry direction in the
sign of amount_cents; planned payments store a positive magnitude and
only become signed when they are executed.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS
# =============================================================================

class AccountType(str, Enum):
    """Supported account types."""
    CASH = "cash"
    BANK = "bank"
    CREDIT = "credit"
    SAVINGS = "savings"


class CategoryKind(str, Enum):
    """Category kinds mirror transaction types."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


class TransactionType(str, Enum):
    """
    Transaction types.

    INCOME and ADJUSTMENT move money in (positive amounts).
    EXPENSE and TRANSFER move money out (negative amounts).
    """
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


class PlannedStatus(str, Enum):
    """
    Planned payment lifecycle.

    PLANNED is the only non-terminal state.
    """
    PLANNED = "planned"
    EXECUTED = "executed"
    CANCELED = "canceled"


INFLOW_TYPES = frozenset({TransactionType.INCOME, TransactionType.ADJUSTMENT})
OUTFLOW_TYPES = frozenset({TransactionType.EXPENSE, TransactionType.TRANSFER})


def expected_sign(txn_type: TransactionType) -> int:
    """Return +1 for inflow types and -1 for outflow types."""
    return 1 if TransactionType(txn_type) in INFLOW_TYPES else -1


def check_amount_sign(txn_type: TransactionType, amount_cents: int) -> None:
    """
    Enforce the transaction sign invariant.

    Raises:
        ValueError: If the amount is zero or its sign disagrees with the type
    """
    if amount_cents == 0:
        raise ValueError("Amount cannot be zero")
    sign = 1 if amount_cents > 0 else -1
    if sign != expected_sign(txn_type):
        direction = "positive (>0)" if expected_sign(txn_type) > 0 else "negative (<0)"
        raise ValueError(
            f"Invalid amount sign for type '{TransactionType(txn_type).value}': "
            f"amount must be {direction}"
        )


# =============================================================================
# ENTITIES
# =============================================================================

class User(BaseModel):
    """Owner of ledger records. Managed outside the core."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=120)
    email: Optional[str] = Field(default=None, max_length=255)
    created_at: Optional[datetime] = None


class Account(BaseModel):
    """An account owned by exactly one user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., gt=0)
    owner_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=120)
    type: AccountType
    currency: str = Field(
        default="AUD",
        min_length=3,
        max_length=3,
        description="ISO 4217 currency code"
    )
    is_active: bool = True
    created_at: Optional[datetime] = None

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        if not v.isalpha():
            raise ValueError(f"Currency must be a 3-letter code: {v}")
        return v.upper()


class Category(BaseModel):
    """
    A transaction category.

    owner_id None marks a global category shared by every user.
    (owner_id, name) is unique with null-safe equality.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., gt=0)
    owner_id: Optional[int] = Field(default=None, gt=0)
    name: str = Field(..., min_length=1, max_length=120)
    kind: CategoryKind

    @property
    def is_global(self) -> bool:
        return self.owner_id is None


class PayPeriod(BaseModel):
    """A pay date anchoring one cash-flow window. Unique per (owner_id, pay_date)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., gt=0)
    owner_id: int = Field(..., gt=0)
    pay_date: date
    gross_income_cents: int = Field(default=0, ge=0)
    note: Optional[str] = Field(default=None, max_length=500)
    created_at: Optional[datetime] = None


class Transaction(BaseModel):
    """
    A ledger transaction.

    CRITICAL: amount_cents > 0 iff type is income/adjustment,
    amount_cents < 0 iff type is expense/transfer. Never zero.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., gt=0)
    owner_id: int = Field(..., gt=0)
    pay_period_id: Optional[int] = Field(default=None, gt=0)
    account_id: int = Field(..., gt=0)
    category_id: Optional[int] = Field(default=None, gt=0)
    type: TransactionType
    amount_cents: int
    description: Optional[str] = Field(default=None, max_length=500)
    txn_date: date
    planned_payment_id: Optional[int] = Field(default=None, gt=0)
    counterparty_user_id: Optional[int] = Field(default=None, gt=0)
    created_at: Optional[datetime] = None

    @model_validator(mode='after')
    def validate_sign(self) -> 'Transaction':
        check_amount_sign(self.type, self.amount_cents)
        return self


class PlannedPayment(BaseModel):
    """
    A future payment obligation.

    amount_cents is the positive magnitude of the payment.
    linked_txn_id is set exactly once, when the payment is executed.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., gt=0)
    owner_id: int = Field(..., gt=0)
    account_id: Optional[int] = Field(default=None, gt=0)
    description: str = Field(..., min_length=1, max_length=500)
    amount_cents: int = Field(..., gt=0)
    due_date: date
    auto_debit: bool = False
    status: PlannedStatus = PlannedStatus.PLANNED
    linked_txn_id: Optional[int] = Field(default=None, gt=0)
    created_at: Optional[datetime] = None

    @model_validator(mode='after')
    def validate_link(self) -> 'PlannedPayment':
        """Only an executed payment points at a transaction, and it always does."""
        if self.status == PlannedStatus.EXECUTED and self.linked_txn_id is None:
            raise ValueError("Executed planned payment must have a linked transaction")
        if self.status != PlannedStatus.EXECUTED and self.linked_txn_id is not None:
            raise ValueError(
                f"Planned payment with status '{self.status.value}' cannot have a linked transaction"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status != PlannedStatus.PLANNED


class SavingEntry(BaseModel):
    """A deposit (positive) or withdrawal (negative) against a savings account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., gt=0)
    owner_id: int = Field(..., gt=0)
    pay_period_id: Optional[int] = Field(default=None, gt=0)
    account_id: int = Field(..., gt=0)
    amount_cents: int
    entry_date: date
    note: Optional[str] = Field(default=None, max_length=500)
    created_at: Optional[datetime] = None

    @field_validator('amount_cents')
    @classmethod
    def validate_nonzero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("Amount cannot be zero")
        return v


class SavingGoal(BaseModel):
    """A target amount to accumulate by a date."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., gt=0)
    owner_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=120)
    target_amount_cents: int = Field(..., gt=0)
    target_date: date
    created_at: Optional[datetime] = None


class SavingEntryGoal(BaseModel):
    """Link between a saving entry and a goal. The pair is unique."""

    saving_entry_id: int = Field(..., gt=0)
    goal_id: int = Field(..., gt=0)
