"""
Summary Models

Read-side projections computed by the summary aggregator. None of these
are stored; each can be recomputed from persisted rows at any time.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from ledger.models.records import AccountType


class PeriodSummary(BaseModel):
    """
    Cash flow for one pay period.

    leftover = income_in - expenses_out - savings_out - reserved_planned
    """

    pay_period_id: int
    owner_id: int
    pay_date: date
    window_end: date = Field(
        ...,
        description="Exclusive end of the window [pay_date, window_end)"
    )
    income_in_cents: int = 0
    expenses_out_cents: int = 0
    savings_out_cents: int = 0
    reserved_planned_cents: int = 0
    leftover_cents: int = 0


class SavingsBreakdown(BaseModel):
    """Savings totals for one account."""

    account_id: int
    account_type: AccountType
    account_name: str
    deposits_cents: int = 0
    withdrawals_cents: int = 0
    net_cents: int = 0


class SavingsSummary(BaseModel):
    """Savings consolidated across every account of an owner."""

    owner_id: int
    total_saved_cents: int = 0
    total_withdrawn_cents: int = 0
    net_saved_cents: int = 0
    breakdown: list[SavingsBreakdown] = Field(default_factory=list)


class GoalProgress(BaseModel):
    """
    Progress toward one saving goal.

    saved_cents is the signed sum of linked entries, so a linked withdrawal
    reduces it. remaining_cents goes negative once the goal is overshot.
    """

    goal_id: int
    owner_id: int
    name: str
    target_amount_cents: int
    target_date: date
    created_at: Optional[datetime] = None
    saved_cents: int = 0
    remaining_cents: int = 0

    @property
    def is_reached(self) -> bool:
        return self.remaining_cents <= 0
