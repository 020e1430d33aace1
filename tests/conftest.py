"""
Shared fixtures.

Every test gets its own in-memory SQLite ledger. Async operations are
driven with asyncio.run from plain synchronous tests.
"""

import asyncio
from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from ledger.config import LedgerSettings, StoreSettings
from ledger.planned import PlannedPaymentStateMachine
from ledger.queries import SummaryAggregator
from ledger.reconcile import ReconciliationEngine
from ledger.records import LedgerRecords
from ledger.services.storage import SQLiteLedgerStore
from ledger.validation import RecordValidator


@pytest.fixture
def ledger_settings():
    return LedgerSettings(
        pay_period_days=14,
        default_currency="AUD",
        max_import_records=1000,
        future_date_tolerance_days=7,
    )


@pytest.fixture
def store_settings():
    return StoreSettings(path=":memory:", busy_timeout_seconds=5.0, connect_attempts=1)


@pytest.fixture
def store(store_settings):
    store = SQLiteLedgerStore(settings=store_settings)
    asyncio.run(store.initialize())
    yield store
    asyncio.run(store.close())


@pytest.fixture
def validator(ledger_settings):
    return RecordValidator(settings=ledger_settings)


@pytest.fixture
def records(store, validator, ledger_settings):
    return LedgerRecords(store, validator, ledger_settings)


@pytest.fixture
def planned(store, validator):
    return PlannedPaymentStateMachine(store, validator)


@pytest.fixture
def reconciler(store, ledger_settings):
    return ReconciliationEngine(store, ledger_settings)


@pytest.fixture
def summaries(store, ledger_settings):
    return SummaryAggregator(store, ledger_settings)


@pytest.fixture
def future_date():
    return date.today() + timedelta(days=30)


@pytest.fixture
def seeded(records):
    """Two users; the first has a bank account, a savings account and a pay period."""

    async def seed():
        user = await records.create_user({"name": "Alice", "email": "alice@example.com"})
        other = await records.create_user({"name": "Bob", "email": "bob@example.com"})
        bank = await records.create_account(
            {"owner_id": user.id, "name": "Everyday", "type": "bank"}
        )
        savings = await records.create_account(
            {"owner_id": user.id, "name": "Rainy Day", "type": "savings"}
        )
        other_account = await records.create_account(
            {"owner_id": other.id, "name": "Bob Cash", "type": "cash"}
        )
        period, _ = await records.upsert_pay_period(
            {"owner_id": user.id, "pay_date": date(2024, 1, 1), "gross_income_cents": 500000}
        )
        return SimpleNamespace(
            user=user,
            other=other,
            bank=bank,
            savings=savings,
            other_account=other_account,
            period=period,
        )

    return asyncio.run(seed())
