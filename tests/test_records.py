"""Tests for the record management flows."""

import asyncio
from datetime import date, timedelta

import pytest

from ledger.errors import Conflict, InvalidInput, InvalidState, NotFound
from ledger.models import CategoryKind, TransactionType


class TestUsers:
    """Tests for user records."""

    def test_create_and_list(self, records):
        """Users are listed in creation order."""

        async def scenario():
            await records.create_user({"name": "Alice", "email": "alice@example.com"})
            await records.create_user({"name": "Bob"})
            return await records.list_users()

        users = asyncio.run(scenario())

        assert [u.name for u in users] == ["Alice", "Bob"]
        assert users[1].email is None

    def test_duplicate_email(self, records):
        """An email can be registered once."""
        asyncio.run(records.create_user({"name": "Alice", "email": "alice@example.com"}))

        with pytest.raises(Conflict):
            asyncio.run(records.create_user({"name": "Other", "email": "alice@example.com"}))

    def test_malformed_email(self, records):
        with pytest.raises(InvalidInput):
            asyncio.run(records.create_user({"name": "Alice", "email": "not-an-email"}))

    def test_unknown_user(self, records):
        with pytest.raises(NotFound):
            asyncio.run(records.get_user(404))


class TestAccounts:
    """Tests for accounts and the patch update."""

    def test_default_currency(self, records, seeded):
        """Accounts created without a currency take the configured default."""
        assert seeded.bank.currency == "AUD"
        assert seeded.bank.is_active

    def test_explicit_currency(self, records, seeded):
        account = asyncio.run(records.create_account(
            {"owner_id": seeded.user.id, "name": "Travel", "type": "credit", "currency": "nzd"}
        ))
        assert account.currency == "NZD"

    def test_unknown_owner(self, records):
        with pytest.raises(NotFound):
            asyncio.run(records.create_account({"owner_id": 404, "name": "Ghost", "type": "bank"}))

    def test_patch_merges(self, records, seeded):
        """Only the fields present in the patch change, in the store as well."""

        async def scenario():
            updated = await records.update_account(seeded.bank.id, {"name": "Daily", "is_active": False})
            return updated, await records.get_account(seeded.bank.id)

        updated, stored = asyncio.run(scenario())

        assert updated == stored
        assert stored.name == "Daily"
        assert stored.is_active is False
        assert stored.currency == seeded.bank.currency
        assert stored.type == seeded.bank.type

    def test_empty_patch(self, records, seeded):
        with pytest.raises(InvalidInput):
            asyncio.run(records.update_account(seeded.bank.id, {}))

    def test_patch_unknown_account(self, records, seeded):
        with pytest.raises(NotFound):
            asyncio.run(records.update_account(404, {"name": "Daily"}))

    def test_list_accounts(self, records, seeded):
        """Only the owner's accounts are listed."""
        accounts = asyncio.run(records.list_accounts(seeded.user.id))
        assert [a.id for a in accounts] == [seeded.bank.id, seeded.savings.id]


class TestCategories:
    """Tests for global and personal categories."""

    def test_global_duplicate(self, records):
        """Two global categories with one name conflict."""
        asyncio.run(records.create_category({"name": "Rent", "kind": "expense"}))

        with pytest.raises(Conflict):
            asyncio.run(records.create_category({"name": "Rent", "kind": "expense"}))

    def test_personal_duplicate(self, records, seeded):
        data = {"owner_id": seeded.user.id, "name": "Hobbies", "kind": "expense"}
        asyncio.run(records.create_category(data))

        with pytest.raises(Conflict):
            asyncio.run(records.create_category(data))

    def test_personal_may_shadow_global(self, records, seeded):
        """A personal category may reuse a global name, and two owners may share one."""

        async def scenario():
            await records.create_category({"name": "Rent", "kind": "expense"})
            mine = await records.create_category(
                {"owner_id": seeded.user.id, "name": "Rent", "kind": "expense"}
            )
            theirs = await records.create_category(
                {"owner_id": seeded.other.id, "name": "Rent", "kind": "expense"}
            )
            return mine, theirs

        mine, theirs = asyncio.run(scenario())
        assert mine.id != theirs.id

    def test_list_categories(self, records, seeded):
        """Globals plus the owner's own, by kind then name."""

        async def scenario():
            await records.create_category({"name": "Salary", "kind": "income"})
            await records.create_category({"name": "Rent", "kind": "expense"})
            await records.create_category(
                {"owner_id": seeded.user.id, "name": "Hobbies", "kind": "expense"}
            )
            await records.create_category(
                {"owner_id": seeded.other.id, "name": "Boats", "kind": "expense"}
            )
            return (
                await records.list_categories(seeded.user.id),
                await records.list_categories(),
            )

        own, global_only = asyncio.run(scenario())

        assert [(c.kind, c.name) for c in own] == [
            (CategoryKind.EXPENSE, "Hobbies"),
            (CategoryKind.EXPENSE, "Rent"),
            (CategoryKind.INCOME, "Salary"),
        ]
        assert all(c.is_global for c in global_only)
        assert len(global_only) == 2


class TestPayPeriods:
    """Tests for the pay period upsert."""

    def test_upsert_updates_existing(self, records, seeded):
        """A second upsert for the same pay date updates in place."""
        period, created = asyncio.run(records.upsert_pay_period({
            "owner_id": seeded.user.id,
            "pay_date": seeded.period.pay_date,
            "gross_income_cents": 520000,
            "note": "raise",
        }))

        assert created is False
        assert period.id == seeded.period.id
        assert period.gross_income_cents == 520000
        assert period.note == "raise"

    def test_upsert_creates(self, records, seeded):
        period, created = asyncio.run(records.upsert_pay_period({
            "owner_id": seeded.user.id,
            "pay_date": date(2024, 1, 15),
        }))

        assert created is True
        assert period.id != seeded.period.id
        assert period.gross_income_cents == 0

    def test_list_newest_first(self, records, seeded):
        asyncio.run(records.upsert_pay_period(
            {"owner_id": seeded.user.id, "pay_date": date(2024, 1, 15)}
        ))
        periods = asyncio.run(records.list_pay_periods(seeded.user.id))
        assert [p.pay_date for p in periods] == [date(2024, 1, 15), date(2024, 1, 1)]


class TestTransactions:
    """Tests for recording, listing and deleting transactions."""

    def _data(self, seeded, **overrides):
        data = {
            "owner_id": seeded.user.id,
            "account_id": seeded.bank.id,
            "type": "expense",
            "amount_cents": -4500,
            "txn_date": date(2024, 1, 3),
        }
        data.update(overrides)
        return data

    def test_record(self, records, seeded):
        txn = asyncio.run(records.record_transaction(
            self._data(seeded, pay_period_id=seeded.period.id, description="Market")
        ))

        assert txn.type == TransactionType.EXPENSE
        assert txn.amount_cents == -4500
        assert txn.pay_period_id == seeded.period.id
        assert txn.created_at is not None

    def test_wrong_sign(self, records, seeded):
        """The sign invariant is checked before anything is stored."""
        with pytest.raises(InvalidInput):
            asyncio.run(records.record_transaction(self._data(seeded, amount_cents=4500)))
        assert asyncio.run(records.list_transactions(seeded.user.id)) == []

    def test_foreign_account(self, records, seeded):
        """Another owner's account is reported as not found."""
        with pytest.raises(NotFound) as exc_info:
            asyncio.run(records.record_transaction(
                self._data(seeded, account_id=seeded.other_account.id)
            ))
        assert exc_info.value.entity == "account"

    def test_foreign_category(self, records, seeded):
        """Another owner's personal category cannot be used."""

        async def scenario():
            category = await records.create_category(
                {"owner_id": seeded.other.id, "name": "Boats", "kind": "expense"}
            )
            await records.record_transaction(self._data(seeded, category_id=category.id))

        with pytest.raises(NotFound):
            asyncio.run(scenario())

    def test_unknown_counterparty(self, records, seeded):
        with pytest.raises(NotFound):
            asyncio.run(records.record_transaction(
                self._data(seeded, type="transfer", counterparty_user_id=404)
            ))

    def test_list_filters(self, records, seeded):
        """Date and period filters narrow the list; newest first."""

        async def scenario():
            ids = []
            for day, period in ((2, seeded.period.id), (5, None), (9, seeded.period.id)):
                txn = await records.record_transaction(
                    self._data(seeded, txn_date=date(2024, 1, day), pay_period_id=period)
                )
                ids.append(txn.id)
            return ids, (
                await records.list_transactions(seeded.user.id),
                await records.list_transactions(
                    seeded.user.id, date_from=date(2024, 1, 3), date_to=date(2024, 1, 9)
                ),
                await records.list_transactions(seeded.user.id, pay_period_id=seeded.period.id),
                await records.list_transactions(seeded.user.id, limit=1, offset=1),
                await records.list_transactions(seeded.other.id),
            )

        ids, (everything, window, in_period, page, other) = asyncio.run(scenario())
        first, second, third = ids

        assert [t.id for t in everything] == [third, second, first]
        assert [t.id for t in window] == [third, second]
        assert [t.id for t in in_period] == [third, first]
        assert [t.id for t in page] == [second]
        assert other == []

    def test_delete(self, records, seeded):
        txn = asyncio.run(records.record_transaction(self._data(seeded)))
        asyncio.run(records.delete_transaction(txn.id))

        with pytest.raises(NotFound):
            asyncio.run(records.get_transaction(txn.id))
        with pytest.raises(NotFound):
            asyncio.run(records.delete_transaction(txn.id))

    def test_delete_settled_transaction(self, records, planned, seeded):
        """A transaction that settles a planned payment stays."""

        async def scenario():
            payment = await planned.create({
                "owner_id": seeded.user.id,
                "account_id": seeded.bank.id,
                "description": "Rent",
                "amount_cents": 30000,
                "due_date": date(2024, 1, 10),
            })
            return await planned.execute(payment.id, {"txn_date": date(2024, 1, 10)})

        txn_id = asyncio.run(scenario())

        with pytest.raises(InvalidState):
            asyncio.run(records.delete_transaction(txn_id))
        assert asyncio.run(records.get_transaction(txn_id)).id == txn_id


class TestSavingsAndGoals:
    """Tests for saving entries, goals and the links between them."""

    def _entry(self, records, seeded, amount=10000, owner=None, account=None):
        return asyncio.run(records.add_saving_entry({
            "owner_id": (owner or seeded.user).id,
            "account_id": (account or seeded.savings).id,
            "amount_cents": amount,
            "entry_date": date(2024, 1, 5),
        }))

    def _goal(self, records, owner, target_date, name="Holiday"):
        return asyncio.run(records.create_goal({
            "owner_id": owner.id,
            "name": name,
            "target_amount_cents": 100000,
            "target_date": target_date,
        }))

    def test_entry_on_foreign_account(self, records, seeded):
        with pytest.raises(NotFound):
            self._entry(records, seeded, account=seeded.other_account)

    def test_list_entries(self, records, seeded):
        deposit = self._entry(records, seeded, 10000)
        withdrawal = self._entry(records, seeded, -2500)

        entries = asyncio.run(records.list_saving_entries(seeded.user.id))

        assert [e.id for e in entries] == [withdrawal.id, deposit.id]
        assert asyncio.run(records.list_saving_entries(
            seeded.user.id, date_from=date(2024, 2, 1)
        )) == []

    def test_goal_in_the_past(self, records, seeded):
        with pytest.raises(InvalidInput):
            self._goal(records, seeded.user, date.today() - timedelta(days=1))

    def test_link_to_goal_of_another_owner(self, records, seeded, future_date):
        """An entry only counts toward goals of its own owner."""
        entry = self._entry(records, seeded)
        goal = self._goal(records, seeded.other, future_date)

        with pytest.raises(NotFound):
            asyncio.run(records.link_entry_to_goal(entry.id, goal.id))

    def test_duplicate_link(self, records, seeded, future_date):
        entry = self._entry(records, seeded)
        goal = self._goal(records, seeded.user, future_date)
        asyncio.run(records.link_entry_to_goal(entry.id, goal.id))

        with pytest.raises(Conflict):
            asyncio.run(records.link_entry_to_goal(entry.id, goal.id))

    def test_unlink_missing(self, records, seeded, future_date):
        entry = self._entry(records, seeded)
        goal = self._goal(records, seeded.user, future_date)

        with pytest.raises(NotFound):
            asyncio.run(records.unlink_entry_from_goal(entry.id, goal.id))

    def test_delete_goal_with_links(self, records, seeded, future_date):
        """Links must be removed before the goal."""
        entry = self._entry(records, seeded)
        goal = self._goal(records, seeded.user, future_date)
        asyncio.run(records.link_entry_to_goal(entry.id, goal.id))

        with pytest.raises(InvalidState):
            asyncio.run(records.delete_goal(goal.id))

        asyncio.run(records.unlink_entry_from_goal(entry.id, goal.id))
        asyncio.run(records.delete_goal(goal.id))
        with pytest.raises(NotFound):
            asyncio.run(records.delete_goal(goal.id))
