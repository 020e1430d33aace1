"""Tests for the planned payment state machine."""

import asyncio
import threading
from datetime import date

import pytest

from ledger.config import StoreSettings
from ledger.errors import InvalidState, MissingAccount, NotFound
from ledger.models import PlannedStatus, TransactionType
from ledger.planned import PlannedPaymentStateMachine
from ledger.records import LedgerRecords
from ledger.services.storage import SQLiteLedgerStore


def _create(planned, seeded, **overrides):
    data = {
        "owner_id": seeded.user.id,
        "account_id": seeded.bank.id,
        "description": "Rent",
        "amount_cents": 30000,
        "due_date": date(2024, 1, 10),
    }
    data.update(overrides)
    return asyncio.run(planned.create(data))


async def _transaction_count(store):
    return await store.scalar("SELECT COUNT(*) FROM transactions", default=0)


class TestExecute:
    """Tests for executing planned payments."""

    def test_execute_creates_expense(self, planned, records, seeded):
        """Execution creates a negative expense and links it."""
        payment = _create(planned, seeded)

        async def scenario():
            txn_id = await planned.execute(payment.id, {"txn_date": "2024-01-11"})
            return txn_id, await records.get_transaction(txn_id), await planned.get(payment.id)

        txn_id, txn, after = asyncio.run(scenario())

        assert txn.type == TransactionType.EXPENSE
        assert txn.amount_cents == -30000
        assert txn.txn_date == date(2024, 1, 11)
        assert txn.account_id == seeded.bank.id
        assert txn.planned_payment_id == payment.id
        assert txn.description == "Rent"
        assert txn.pay_period_id is None
        assert after.status == PlannedStatus.EXECUTED
        assert after.linked_txn_id == txn_id

    def test_overrides(self, planned, records, seeded):
        """Account, category and description overrides are applied."""
        payment = _create(planned, seeded)

        async def scenario():
            category = await records.create_category({"name": "Housing", "kind": "expense"})
            txn_id = await planned.execute(
                payment.id,
                {
                    "txn_date": date(2024, 1, 9),
                    "account_id": seeded.savings.id,
                    "category_id": category.id,
                    "description": "January rent",
                },
            )
            return category, await records.get_transaction(txn_id)

        category, txn = asyncio.run(scenario())

        assert txn.account_id == seeded.savings.id
        assert txn.category_id == category.id
        assert txn.description == "January rent"

    def test_missing_account(self, planned, store, seeded):
        """No account on the payment and none given."""
        payment = _create(planned, seeded, account_id=None)

        with pytest.raises(MissingAccount):
            asyncio.run(planned.execute(payment.id, {"txn_date": "2024-01-11"}))

        assert asyncio.run(planned.get(payment.id)).status == PlannedStatus.PLANNED
        assert asyncio.run(_transaction_count(store)) == 0

    def test_account_of_another_owner(self, planned, store, seeded):
        """The resolved account must belong to the payment owner."""
        payment = _create(planned, seeded)

        with pytest.raises(NotFound):
            asyncio.run(planned.execute(
                payment.id,
                {"txn_date": "2024-01-11", "account_id": seeded.other_account.id},
            ))
        assert asyncio.run(_transaction_count(store)) == 0

    def test_unknown_category(self, planned, store, seeded):
        """A category override must exist."""
        payment = _create(planned, seeded)

        with pytest.raises(NotFound):
            asyncio.run(planned.execute(payment.id, {"txn_date": "2024-01-11", "category_id": 999}))
        assert asyncio.run(planned.get(payment.id)).status == PlannedStatus.PLANNED

    def test_unknown_payment(self, planned, seeded):
        """Executing a missing payment is NotFound."""
        with pytest.raises(NotFound):
            asyncio.run(planned.execute(12345, {"txn_date": "2024-01-11"}))

    def test_execute_twice(self, planned, store, seeded):
        """The second execution fails and creates nothing."""
        payment = _create(planned, seeded)
        asyncio.run(planned.execute(payment.id, {"txn_date": "2024-01-11"}))

        with pytest.raises(InvalidState):
            asyncio.run(planned.execute(payment.id, {"txn_date": "2024-01-12"}))
        assert asyncio.run(_transaction_count(store)) == 1

    def test_execute_canceled(self, planned, store, seeded):
        """A canceled payment cannot be executed."""
        payment = _create(planned, seeded)
        asyncio.run(planned.cancel(payment.id))

        with pytest.raises(InvalidState):
            asyncio.run(planned.execute(payment.id, {"txn_date": "2024-01-11"}))
        assert asyncio.run(_transaction_count(store)) == 0

    def test_concurrent_tasks(self, planned, store, seeded):
        """Two concurrent executions on one store: exactly one wins."""
        payment = _create(planned, seeded)

        async def scenario():
            return await asyncio.gather(
                planned.execute(payment.id, {"txn_date": "2024-01-11"}),
                planned.execute(payment.id, {"txn_date": "2024-01-11"}),
                return_exceptions=True,
            )

        outcomes = asyncio.run(scenario())

        assert sum(isinstance(o, int) for o in outcomes) == 1
        assert sum(isinstance(o, InvalidState) for o in outcomes) == 1
        assert asyncio.run(_transaction_count(store)) == 1

    def test_concurrent_connections(self, tmp_path, ledger_settings, validator):
        """Two connections to one database file: exactly one execution wins."""
        settings = StoreSettings(
            path=str(tmp_path / "ledger.db"),
            busy_timeout_seconds=10.0,
            connect_attempts=1,
        )

        async def setup():
            store = SQLiteLedgerStore(settings=settings)
            await store.initialize()
            records = LedgerRecords(store, validator, ledger_settings)
            user = await records.create_user({"name": "Alice"})
            account = await records.create_account(
                {"owner_id": user.id, "name": "Everyday", "type": "bank"}
            )
            payment = await PlannedPaymentStateMachine(store, validator).create({
                "owner_id": user.id,
                "account_id": account.id,
                "description": "Rent",
                "amount_cents": 30000,
                "due_date": "2024-01-10",
            })
            await store.close()
            return payment.id

        payment_id = asyncio.run(setup())
        barrier = threading.Barrier(2)
        outcomes = []

        def worker():
            async def run():
                store = SQLiteLedgerStore(settings=settings)
                machine = PlannedPaymentStateMachine(store, validator)
                barrier.wait()
                try:
                    return await machine.execute(payment_id, {"txn_date": "2024-01-11"})
                except InvalidState as e:
                    return e
                finally:
                    await store.close()

            outcomes.append(asyncio.run(run()))

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        async def count():
            store = SQLiteLedgerStore(settings=settings)
            try:
                return await _transaction_count(store)
            finally:
                await store.close()

        assert sum(isinstance(o, int) for o in outcomes) == 1
        assert sum(isinstance(o, InvalidState) for o in outcomes) == 1
        assert asyncio.run(count()) == 1


class TestCancel:
    """Tests for canceling planned payments."""

    def test_cancel(self, planned, seeded):
        """Cancel changes the status and nothing else."""
        payment = _create(planned, seeded)

        canceled = asyncio.run(planned.cancel(payment.id))

        assert canceled.status == PlannedStatus.CANCELED
        assert canceled.linked_txn_id is None
        assert canceled.model_dump(exclude={"status"}) == payment.model_dump(exclude={"status"})

    def test_cancel_executed(self, planned, seeded):
        """An executed payment cannot be canceled and stays executed."""
        payment = _create(planned, seeded)
        asyncio.run(planned.execute(payment.id, {"txn_date": "2024-01-11"}))

        with pytest.raises(InvalidState) as exc_info:
            asyncio.run(planned.cancel(payment.id))
        assert exc_info.value.current_state == "executed"
        assert asyncio.run(planned.get(payment.id)).status == PlannedStatus.EXECUTED

    def test_cancel_twice(self, planned, seeded):
        """Canceled is terminal."""
        payment = _create(planned, seeded)
        asyncio.run(planned.cancel(payment.id))

        with pytest.raises(InvalidState):
            asyncio.run(planned.cancel(payment.id))

    def test_cancel_unknown(self, planned, seeded):
        """Canceling a missing payment is NotFound."""
        with pytest.raises(NotFound):
            asyncio.run(planned.cancel(999))


class TestCreateAndList:
    """Tests for creating and listing planned payments."""

    def test_create_with_foreign_account(self, planned, seeded):
        """The stored account must belong to the owner."""
        with pytest.raises(NotFound):
            _create(planned, seeded, account_id=seeded.other_account.id)

    def test_create_forces_planned_status(self, planned, seeded):
        """New payments start planned with no link."""
        payment = _create(planned, seeded)
        assert payment.status == PlannedStatus.PLANNED
        assert payment.linked_txn_id is None

    def test_list_order_and_filters(self, planned, seeded):
        """Listed by due date; filters narrow by window and status."""
        first = _create(planned, seeded, description="Phone", due_date=date(2024, 1, 20))
        second = _create(planned, seeded, description="Rent", due_date=date(2024, 1, 5))
        third = _create(planned, seeded, description="Gym", due_date=date(2024, 1, 20))
        asyncio.run(planned.cancel(first.id))

        everything = asyncio.run(planned.list_for_owner(seeded.user.id))
        in_window = asyncio.run(planned.list_for_owner(
            seeded.user.id, date_from=date(2024, 1, 10), date_to=date(2024, 1, 31)
        ))
        still_planned = asyncio.run(planned.list_for_owner(
            seeded.user.id, status=PlannedStatus.PLANNED
        ))

        assert [p.id for p in everything] == [second.id, third.id, first.id]
        assert [p.id for p in in_window] == [third.id, first.id]
        assert [p.id for p in still_planned] == [second.id, third.id]
        assert asyncio.run(planned.list_for_owner(seeded.other.id)) == []
