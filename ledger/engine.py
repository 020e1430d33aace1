"""
Ledger Engine

This module ties together all the components and exposes the operations
its callers use:
1. Planned payments (create, list, execute, cancel)
2. Reconciliation (import with dry run and probe, export)
3. Summaries (pay period, savings, goals)
4. Record flows (through engine.records)

DESIGN DECISION: The engine owns no connection of its own.
It is handed one store and passes that same store to every component,
so several engines over different stores can live in one process.
"""

from datetime import date
from typing import Any, Optional

from pydantic import ValidationError

from ledger.config import Settings, get_settings
from ledger.errors import InvalidInput
from ledger.log import configure_logging, get_logger
from ledger.models.batch import ExportSnapshot, ReconcileResult
from ledger.models.records import PlannedPayment, PlannedStatus, User
from ledger.models.summary import GoalProgress, PeriodSummary, SavingsSummary
from ledger.models.validation import ValidationIssue
from ledger.planned import PlannedPaymentStateMachine
from ledger.queries import SummaryAggregator
from ledger.reconcile import ReconciliationEngine
from ledger.records import LedgerRecords
from ledger.services.storage import LedgerStore, SQLiteLedgerStore
from ledger.validation import RecordValidator


logger = get_logger(__name__)


class LedgerEngine:
    """
    Facade over the ledger core.

    Domain errors (NotFound, InvalidState, InvalidInput, Conflict) are
    raised to the caller unchanged. StoreUnavailable is the only error
    worth retrying.
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[Settings] = None,
        validator: Optional[RecordValidator] = None,
    ):
        self._store = store
        settings = settings or get_settings()
        ledger_settings = settings.ledger
        self._validator = validator or RecordValidator(settings=ledger_settings)

        self.records = LedgerRecords(store, self._validator, ledger_settings)
        self.planned = PlannedPaymentStateMachine(store, self._validator)
        self.reconciliation = ReconciliationEngine(store, ledger_settings)
        self.summaries = SummaryAggregator(store, ledger_settings)

    @property
    def store(self) -> LedgerStore:
        return self._store

    # =========================================================================
    # Planned payments
    # =========================================================================

    async def create_planned_payment(self, data: Any) -> PlannedPayment:
        return await self.planned.create(data)

    async def list_planned_payments(
        self,
        owner_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        status: Optional[PlannedStatus] = None,
    ) -> list[PlannedPayment]:
        return await self.planned.list_for_owner(owner_id, date_from, date_to, status)

    async def execute_planned_payment(self, planned_payment_id: int, execution: Any) -> int:
        """Execute a planned payment; returns the id of the created transaction."""
        return await self.planned.execute(planned_payment_id, execution)

    async def cancel_planned_payment(self, planned_payment_id: int) -> PlannedPayment:
        return await self.planned.cancel(planned_payment_id)

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def import_data(
        self,
        payload: Any,
        dry_run: bool = False,
        probe: bool = False,
        owner_id: Optional[int] = None,
    ) -> ReconcileResult:
        """
        Reconcile a batch into the store.

        payload is either the batch itself or an export snapshot; a
        snapshot's user scopes the import unless owner_id is given.
        Records inside the snapshot are validated one by one during
        reconciliation, like those of a plain batch.

        Raises:
            InvalidInput: If the snapshot user or the batch shape is malformed
        """
        if isinstance(payload, ExportSnapshot):
            owner_id = owner_id or payload.user.id
            payload = payload.data
        elif isinstance(payload, dict) and "data" in payload and "user" in payload:
            try:
                user = User.model_validate(payload["user"])
            except ValidationError as e:
                raise InvalidInput(
                    "Export snapshot user is malformed",
                    issues=ValidationIssue.from_validation_error(e, prefix="snapshot.user"),
                ) from e
            owner_id = owner_id or user.id
            payload = payload["data"]
        return await self.reconciliation.reconcile(
            payload,
            dry_run=dry_run,
            probe=probe,
            owner_id=owner_id,
        )

    async def export_data(self, owner_id: int) -> ExportSnapshot:
        return await self.reconciliation.export(owner_id)

    # =========================================================================
    # Summaries
    # =========================================================================

    async def period_summary(self, pay_period_id: int) -> PeriodSummary:
        return await self.summaries.period_summary(pay_period_id)

    async def savings_summary(self, owner_id: int) -> SavingsSummary:
        return await self.summaries.savings_summary(owner_id)

    async def goal_progress(self, owner_id: int) -> list[GoalProgress]:
        return await self.summaries.goal_progress(owner_id)

    # =========================================================================
    # Health
    # =========================================================================

    async def health(self) -> dict:
        """Store round-trip check."""
        ok = await self._store.ping()
        if not ok:
            logger.warning("store_ping_failed")
        return {"status": "ok" if ok else "error", "db": ok}

    async def close(self) -> None:
        await self._store.close()


async def create_engine(
    settings: Optional[Settings] = None,
    path: Optional[str] = None,
) -> LedgerEngine:
    """
    Factory function to create a ready-to-use engine.

    Args:
        settings: Settings to use; defaults to the process settings
        path: Database path overriding LEDGER_DB_PATH (':memory:' for a
              private in-process ledger)

    Returns:
        LedgerEngine over an initialized SQLite store
    """
    settings = settings or get_settings()
    configure_logging(
        level=settings.logging.level,
        render_json=settings.logging.render_json,
    )

    store = SQLiteLedgerStore(path=path, settings=settings.store)
    await store.initialize()

    logger.info("engine_created", path=store.path)
    return LedgerEngine(store, settings=settings)
