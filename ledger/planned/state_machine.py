"""
Planned Payment State Machine

    planned --execute--> executed   (terminal)
    planned --cancel---> canceled   (terminal)

CRITICAL: Execution creates a real expense transaction and flips the
payment to executed in ONE atomic unit. The flip is a conditional write
(WHERE status = 'planned'); if it does not apply, another caller got
there first and the whole unit rolls back. Two concurrent executions can
never both create a transaction.

The stored magnitude becomes a signed ledger amount in exactly one place:
ledger_amount().
"""

from datetime import date
from typing import Any, Optional

from ledger.errors import InvalidState, MissingAccount, NotFound
from ledger.log import get_logger
from ledger.models.inputs import ExecutionInput, PlannedPaymentCreate
from ledger.models.records import PlannedPayment, PlannedStatus, TransactionType
from ledger.services.storage import LedgerStore, OwnedEntity
from ledger.validation import RecordValidator


logger = get_logger(__name__)


PLANNED_COLUMNS = (
    "id, owner_id, account_id, description, amount_cents, due_date, "
    "auto_debit, status, linked_txn_id, created_at"
)


def ledger_amount(magnitude_cents: int) -> int:
    """
    Translate a planned payment's stored magnitude into the signed amount
    of the expense transaction that settles it.

    The sign is forced negative whatever sign the magnitude was stored with.
    """
    return -abs(magnitude_cents)


class PlannedPaymentStateMachine:
    """
    Drives planned payments through their lifecycle.

    Every transition reads the current state, checks it, and then writes
    with the expected state in the WHERE clause.
    """

    def __init__(
        self,
        store: LedgerStore,
        validator: Optional[RecordValidator] = None,
    ):
        self._store = store
        self._validator = validator or RecordValidator()

    async def get(self, planned_payment_id: int) -> PlannedPayment:
        """
        Load a planned payment.

        Raises:
            NotFound: If there is no such payment
        """
        row = await self._store.fetch_one(
            f"SELECT {PLANNED_COLUMNS} FROM planned_payments WHERE id = ?",
            (planned_payment_id,),
        )
        if row is None:
            raise NotFound("planned_payment", planned_payment_id)
        return PlannedPayment.model_validate(row)

    async def create(self, data: Any) -> PlannedPayment:
        """
        Create a planned payment in state planned.

        Args:
            data: PlannedPaymentCreate or its raw dict form

        Raises:
            InvalidInput: If the record fails validation
            NotFound: If the owner is unknown or the account is not theirs
        """
        record = self._validator.parse(data, PlannedPaymentCreate)

        async with self._store.transaction() as tx:
            if not await tx.exists("users", record.owner_id):
                raise NotFound("user", record.owner_id)
            if record.account_id is not None and not await tx.owns(
                OwnedEntity.ACCOUNT, record.account_id, record.owner_id
            ):
                raise NotFound(
                    "account",
                    record.account_id,
                    "Account not found or does not belong to user",
                )
            result = await tx.execute(
                """
                INSERT INTO planned_payments
                    (owner_id, account_id, description, amount_cents, due_date, auto_debit, status)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.owner_id,
                    record.account_id,
                    record.description,
                    record.amount_cents,
                    record.due_date,
                    record.auto_debit,
                    PlannedStatus.PLANNED,
                ),
            )

        logger.info(
            "planned_payment_created",
            planned_payment_id=result.last_row_id,
            owner_id=record.owner_id,
            amount_cents=record.amount_cents,
        )
        return await self.get(result.last_row_id)

    async def list_for_owner(
        self,
        owner_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        status: Optional[PlannedStatus] = None,
    ) -> list[PlannedPayment]:
        """
        List an owner's planned payments.

        Args:
            owner_id: Owner whose payments to list
            date_from: Only payments due on or after this date
            date_to: Only payments due on or before this date
            status: Only payments in this state

        Returns:
            Payments ordered by due date, most recently created first within a day
        """
        sql = f"SELECT {PLANNED_COLUMNS} FROM planned_payments WHERE owner_id = ?"
        params: list[Any] = [owner_id]
        if date_from is not None:
            sql += " AND due_date >= ?"
            params.append(date_from)
        if date_to is not None:
            sql += " AND due_date <= ?"
            params.append(date_to)
        if status is not None:
            sql += " AND status = ?"
            params.append(PlannedStatus(status))
        sql += " ORDER BY due_date ASC, created_at DESC, id DESC"

        rows = await self._store.fetch_all(sql, params)
        return [PlannedPayment.model_validate(row) for row in rows]

    async def execute(self, planned_payment_id: int, execution: Any) -> int:
        """
        Settle a planned payment with a real expense transaction.

        Args:
            planned_payment_id: Payment to execute
            execution: ExecutionInput or its raw dict form

        Returns:
            The id of the created transaction

        Raises:
            NotFound: Payment missing, account not the owner's, or category unusable
            InvalidState: Payment is not planned, or another caller executed it first
            MissingAccount: Neither the input nor the payment names an account
        """
        params = self._validator.parse(execution, ExecutionInput)

        async with self._store.transaction() as tx:
            row = await tx.fetch_one(
                f"SELECT {PLANNED_COLUMNS} FROM planned_payments WHERE id = ?",
                (planned_payment_id,),
            )
            if row is None:
                raise NotFound("planned_payment", planned_payment_id)
            payment = PlannedPayment.model_validate(row)

            if payment.status != PlannedStatus.PLANNED:
                logger.debug(
                    "planned_payment_execute_rejected",
                    planned_payment_id=planned_payment_id,
                    status=payment.status.value,
                )
                raise InvalidState(
                    f"Cannot execute planned payment with status '{payment.status.value}'",
                    current_state=payment.status.value,
                )

            account_id = params.account_id or payment.account_id
            if account_id is None:
                raise MissingAccount(
                    "No account specified: provide account_id or set it on the planned payment"
                )
            if not await tx.owns(OwnedEntity.ACCOUNT, account_id, payment.owner_id):
                raise NotFound(
                    "account",
                    account_id,
                    "Account not found or does not belong to user",
                )
            if params.category_id is not None and not await tx.owns(
                OwnedEntity.CATEGORY, params.category_id, payment.owner_id
            ):
                raise NotFound("category", params.category_id)

            txn = await tx.execute(
                """
                INSERT INTO transactions
                    (owner_id, pay_period_id, account_id, category_id, type,
                     amount_cents, description, txn_date, planned_payment_id)
                VALUES (?, NULL, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    payment.owner_id,
                    account_id,
                    params.category_id,
                    TransactionType.EXPENSE,
                    ledger_amount(payment.amount_cents),
                    params.description or payment.description,
                    params.txn_date,
                    payment.id,
                ),
            )

            transition = await tx.execute(
                """
                UPDATE planned_payments
                SET status = ?, linked_txn_id = ?
                WHERE id = ? AND status = ?
                """,
                (PlannedStatus.EXECUTED, txn.last_row_id, payment.id, PlannedStatus.PLANNED),
            )
            if transition.rowcount != 1:
                logger.debug(
                    "planned_payment_execute_lost_race",
                    planned_payment_id=planned_payment_id,
                )
                raise InvalidState(
                    "Planned payment was executed or canceled concurrently",
                    current_state=None,
                )

        logger.info(
            "planned_payment_executed",
            planned_payment_id=payment.id,
            transaction_id=txn.last_row_id,
            account_id=account_id,
            amount_cents=ledger_amount(payment.amount_cents),
        )
        return txn.last_row_id

    async def cancel(self, planned_payment_id: int) -> PlannedPayment:
        """
        Cancel a planned payment. No other field changes.

        Raises:
            NotFound: Payment missing
            InvalidState: Payment is not planned
        """
        async with self._store.transaction() as tx:
            row = await tx.fetch_one(
                "SELECT status FROM planned_payments WHERE id = ?",
                (planned_payment_id,),
            )
            if row is None:
                raise NotFound("planned_payment", planned_payment_id)

            result = await tx.execute(
                "UPDATE planned_payments SET status = ? WHERE id = ? AND status = ?",
                (PlannedStatus.CANCELED, planned_payment_id, PlannedStatus.PLANNED),
            )
            if result.rowcount != 1:
                logger.debug(
                    "planned_payment_cancel_rejected",
                    planned_payment_id=planned_payment_id,
                    status=row["status"],
                )
                raise InvalidState(
                    f"Cannot cancel planned payment with status '{row['status']}'",
                    current_state=row["status"],
                )

        logger.info("planned_payment_canceled", planned_payment_id=planned_payment_id)
        return await self.get(planned_payment_id)
