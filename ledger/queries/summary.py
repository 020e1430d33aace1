"""
Summary Aggregation

DESIGN DECISION: Summaries are DETERMINISTIC read-side projections.
Every figure is computed by SQL over persisted rows at the time of the
call. Nothing is cached and nothing is written, so any summary can be
re-derived at any time and always agrees with the ledger.

SIGN CONVENTIONS:
- income_in counts positive income/adjustment amounts
- expenses_out counts the absolute value of negative expense/transfer amounts
- savings_out is signed: withdrawals reduce it
- reserved_planned sums magnitudes of payments still planned in the window
"""

from datetime import date, timedelta
from typing import Optional

from ledger.config import LedgerSettings, get_settings
from ledger.errors import NotFound
from ledger.models.summary import (
    GoalProgress,
    PeriodSummary,
    SavingsBreakdown,
    SavingsSummary,
)
from ledger.services.storage import LedgerStore


class SummaryAggregator:
    """
    Computes period, savings and goal summaries.

    GUARANTEES:
    - Only returns figures derived from stored rows
    - Empty sums are zero, never missing
    - Never mutates the store
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger

    def window_end(self, pay_date: date) -> date:
        """Exclusive end of the pay period window starting at pay_date."""
        return pay_date + timedelta(days=self._settings.pay_period_days)

    async def period_summary(self, pay_period_id: int) -> PeriodSummary:
        """
        Cash flow for one pay period.

        Transactions and saving entries are scoped by their pay period;
        planned payments by the owner and the due date falling in
        [pay_date, pay_date + pay_period_days).

        Raises:
            NotFound: If the pay period does not exist
        """
        period = await self._store.fetch_one(
            "SELECT id, owner_id, pay_date FROM pay_periods WHERE id = ?",
            (pay_period_id,),
        )
        if period is None:
            raise NotFound("pay_period", pay_period_id)

        pay_date = date.fromisoformat(period["pay_date"])
        end = self.window_end(pay_date)

        income_in = await self._store.scalar(
            """
            SELECT COALESCE(SUM(amount_cents), 0)
            FROM transactions
            WHERE pay_period_id = ?
              AND type IN ('income', 'adjustment')
              AND amount_cents > 0
            """,
            (pay_period_id,),
            default=0,
        )
        expenses_out = await self._store.scalar(
            """
            SELECT COALESCE(SUM(ABS(amount_cents)), 0)
            FROM transactions
            WHERE pay_period_id = ?
              AND type IN ('expense', 'transfer')
              AND amount_cents < 0
            """,
            (pay_period_id,),
            default=0,
        )
        savings_out = await self._store.scalar(
            "SELECT COALESCE(SUM(amount_cents), 0) FROM saving_entries WHERE pay_period_id = ?",
            (pay_period_id,),
            default=0,
        )
        reserved_planned = await self._store.scalar(
            """
            SELECT COALESCE(SUM(amount_cents), 0)
            FROM planned_payments
            WHERE owner_id = ?
              AND status = 'planned'
              AND due_date >= ?
              AND due_date < ?
            """,
            (period["owner_id"], pay_date, end),
            default=0,
        )

        return PeriodSummary(
            pay_period_id=pay_period_id,
            owner_id=period["owner_id"],
            pay_date=pay_date,
            window_end=end,
            income_in_cents=income_in,
            expenses_out_cents=expenses_out,
            savings_out_cents=savings_out,
            reserved_planned_cents=reserved_planned,
            leftover_cents=income_in - expenses_out - savings_out - reserved_planned,
        )

    async def savings_summary(self, owner_id: int) -> SavingsSummary:
        """Deposits, withdrawals and net savings, with a per-account breakdown."""
        totals = await self._store.fetch_one(
            """
            SELECT
                COALESCE(SUM(CASE WHEN amount_cents > 0 THEN amount_cents ELSE 0 END), 0) AS deposits,
                COALESCE(SUM(CASE WHEN amount_cents < 0 THEN ABS(amount_cents) ELSE 0 END), 0) AS withdrawals
            FROM saving_entries
            WHERE owner_id = ?
            """,
            (owner_id,),
        )
        rows = await self._store.fetch_all(
            """
            SELECT
                a.id AS account_id,
                a.type AS account_type,
                a.name AS account_name,
                COALESCE(SUM(CASE WHEN se.amount_cents > 0 THEN se.amount_cents ELSE 0 END), 0) AS deposits,
                COALESCE(SUM(CASE WHEN se.amount_cents < 0 THEN ABS(se.amount_cents) ELSE 0 END), 0) AS withdrawals,
                COALESCE(SUM(se.amount_cents), 0) AS net
            FROM saving_entries se
            JOIN accounts a ON se.account_id = a.id
            WHERE se.owner_id = ?
            GROUP BY a.id, a.type, a.name
            ORDER BY a.type, a.name
            """,
            (owner_id,),
        )

        deposits = totals["deposits"] if totals else 0
        withdrawals = totals["withdrawals"] if totals else 0
        return SavingsSummary(
            owner_id=owner_id,
            total_saved_cents=deposits,
            total_withdrawn_cents=withdrawals,
            net_saved_cents=deposits - withdrawals,
            breakdown=[
                SavingsBreakdown(
                    account_id=row["account_id"],
                    account_type=row["account_type"],
                    account_name=row["account_name"],
                    deposits_cents=row["deposits"],
                    withdrawals_cents=row["withdrawals"],
                    net_cents=row["net"],
                )
                for row in rows
            ],
        )

    async def goal_progress(self, owner_id: int) -> list[GoalProgress]:
        """
        Progress of every goal an owner has.

        saved is the signed sum over linked entries; goals come back by
        target date, most recently created first within a date.
        """
        rows = await self._store.fetch_all(
            """
            SELECT
                g.id AS goal_id,
                g.owner_id,
                g.name,
                g.target_amount_cents,
                g.target_date,
                g.created_at,
                COALESCE(SUM(se.amount_cents), 0) AS saved
            FROM saving_goals g
            LEFT JOIN saving_entry_goals seg ON seg.goal_id = g.id
            LEFT JOIN saving_entries se ON se.id = seg.saving_entry_id
            WHERE g.owner_id = ?
            GROUP BY g.id, g.owner_id, g.name, g.target_amount_cents, g.target_date, g.created_at
            ORDER BY g.target_date ASC, g.created_at DESC, g.id DESC
            """,
            (owner_id,),
        )
        return [
            GoalProgress(
                goal_id=row["goal_id"],
                owner_id=row["owner_id"],
                name=row["name"],
                target_amount_cents=row["target_amount_cents"],
                target_date=row["target_date"],
                created_at=row["created_at"],
                saved_cents=row["saved"],
                remaining_cents=row["target_amount_cents"] - row["saved"],
            )
            for row in rows
        ]
