"""
Validated Input Models

These are the typed records the core accepts from its callers.
They carry no identifiers for the rows they create; the store assigns those.

AccountPatch is the one update shape: every updatable field is optional,
and a field that is present and not None overwrites the stored value.
"""

from datetime import date
from typing import Annotated, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from ledger.models.records import (
    Account,
    AccountType,
    CategoryKind,
    TransactionType,
    check_amount_sign,
)


def _normalize_currency(v: str) -> str:
    if len(v) != 3 or not v.isalpha():
        raise ValueError(f"Currency must be a 3-letter code: {v}")
    return v.upper()


CurrencyCode = Annotated[str, AfterValidator(_normalize_currency)]


class UserCreate(BaseModel):
    """New ledger owner."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=120)
    email: Optional[str] = Field(
        default=None,
        max_length=255,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
    )


class AccountCreate(BaseModel):
    """New account. currency None means the configured default."""
    model_config = ConfigDict(str_strip_whitespace=True)

    owner_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=120)
    type: AccountType
    currency: Optional[CurrencyCode] = None
    is_active: bool = True


class AccountPatch(BaseModel):
    """
    Field-level update for an account.

    Merge rule: present-and-non-null overwrites; absent leaves unchanged.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    currency: Optional[CurrencyCode] = None
    is_active: Optional[bool] = None

    def changes(self) -> dict:
        """Fields this patch overwrites."""
        return self.model_dump(exclude_none=True)

    @property
    def is_empty(self) -> bool:
        return not self.changes()

    def apply(self, account: Account) -> Account:
        """Return the account with this patch merged in."""
        return account.model_copy(update=self.changes())


class CategoryCreate(BaseModel):
    """New category. owner_id None creates a global category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    owner_id: Optional[int] = Field(default=None, gt=0)
    name: str = Field(..., min_length=1, max_length=120)
    kind: CategoryKind


class PayPeriodUpsert(BaseModel):
    """Create the pay period for (owner_id, pay_date) or update its income and note."""
    model_config = ConfigDict(str_strip_whitespace=True)

    owner_id: int = Field(..., gt=0)
    pay_date: date
    gross_income_cents: int = Field(default=0, ge=0)
    note: Optional[str] = Field(default=None, max_length=500)


class TransactionCreate(BaseModel):
    """New transaction. The sign invariant is checked here, before persistence."""
    model_config = ConfigDict(str_strip_whitespace=True)

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

    @model_validator(mode='after')
    def validate_sign(self) -> 'TransactionCreate':
        check_amount_sign(self.type, self.amount_cents)
        return self


class PlannedPaymentCreate(BaseModel):
    """New planned payment. amount_cents is a positive magnitude."""
    model_config = ConfigDict(str_strip_whitespace=True)

    owner_id: int = Field(..., gt=0)
    account_id: Optional[int] = Field(default=None, gt=0)
    description: str = Field(..., min_length=1, max_length=500)
    amount_cents: int = Field(..., gt=0, description="Amount must be positive")
    due_date: date
    auto_debit: bool = False


class ExecutionInput(BaseModel):
    """
    Parameters for executing a planned payment.

    account_id overrides the payment's stored account.
    description overrides the payment's description on the created transaction.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    txn_date: date
    account_id: Optional[int] = Field(default=None, gt=0)
    category_id: Optional[int] = Field(default=None, gt=0)
    description: Optional[str] = Field(default=None, max_length=500)


class SavingEntryCreate(BaseModel):
    """New saving entry: positive deposits, negative withdrawals."""
    model_config = ConfigDict(str_strip_whitespace=True)

    owner_id: int = Field(..., gt=0)
    pay_period_id: Optional[int] = Field(default=None, gt=0)
    account_id: int = Field(..., gt=0)
    amount_cents: int
    entry_date: date
    note: Optional[str] = Field(default=None, max_length=500)

    @field_validator('amount_cents')
    @classmethod
    def validate_nonzero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("Amount cannot be zero")
        return v


class SavingGoalCreate(BaseModel):
    """New saving goal. The target date is checked against today by the validator."""
    model_config = ConfigDict(str_strip_whitespace=True)

    owner_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=120)
    target_amount_cents: int = Field(..., gt=0, description="Target amount must be positive")
    target_date: date
