"""
Reconciliation Engine

Merges a caller-supplied batch into the store, one table at a time, and
produces the read-side mirror (export) in exactly the shape it consumes.

CRITICAL: Per-record independence. Each record is its own atomic unit,
and whatever happens to it ends up in a count. A record's failure never
stops the records after it, in this table or the next. A record that
fails its table model (a wrong sign, a missing field) is skipped the
same way; only a batch with the wrong shape is rejected as a whole.

MODES:
- real run: insert, fall back to the table's update on a duplicate key
- dry run: every supplied record counts as inserted, the store is not read
- probe (dry run only): the batch is applied inside one unit that is
  always rolled back, so the counts are what a real run would report
  and the store is left unchanged
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from ledger.config import LedgerSettings, get_settings
from ledger.errors import InvalidInput, LedgerError, NotFound
from ledger.log import get_logger
from ledger.models.batch import (
    RECORD_MODELS,
    ExportData,
    ExportSnapshot,
    ImportBatch,
    ReconcileResult,
    TableCounts,
    TableKind,
)
from ledger.models.records import User
from ledger.reconcile.tables import TABLE_SPECS, TableSpec
from ledger.services.storage import DuplicateKeyError, LedgerStore, OwnedEntity


logger = get_logger(__name__)


INSERTED = "inserted"
UPDATED = "updated"
SKIPPED = "skipped"


class ReconciliationEngine:
    """
    Bulk merge and export of one owner's ledger.

    Usage:
        engine = ReconciliationEngine(store)
        result = await engine.reconcile({"accounts": [...]}, dry_run=True)
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger

    # =========================================================================
    # Import
    # =========================================================================

    async def reconcile(
        self,
        batch: Any,
        dry_run: bool = False,
        probe: bool = False,
        owner_id: Optional[int] = None,
    ) -> ReconcileResult:
        """
        Merge a batch into the store.

        Args:
            batch: ImportBatch, ExportData or the raw dict form
            dry_run: Report counts without changing the store
            probe: With dry_run, attempt every write and roll it back
            owner_id: If given, records owned by anyone else are skipped

        Returns:
            Per-table counts and grand totals

        Raises:
            InvalidInput: If the batch is structurally malformed or too large, or probe
                is requested without dry_run
        """
        batch = ImportBatch.from_payload(batch)

        if probe and not dry_run:
            raise InvalidInput("probe is only meaningful together with dry_run")

        record_count = batch.record_count()
        if record_count > self._settings.max_import_records:
            raise InvalidInput(
                f"Batch has {record_count} records, "
                f"more than the limit of {self._settings.max_import_records}"
            )

        result = ReconcileResult(dry_run=dry_run, probe=probe)

        if dry_run and not probe:
            for kind, records in batch.tables():
                result.add(kind, TableCounts(inserted=len(records)))
        elif probe:
            async with self._store.transaction(rollback=True):
                await self._apply(batch, result, owner_id)
        else:
            await self._apply(batch, result, owner_id)

        logger.info(
            "reconcile_completed",
            dry_run=dry_run,
            probe=probe,
            owner_id=owner_id,
            records=record_count,
            inserted=result.inserted,
            updated=result.updated,
            skipped=result.skipped,
        )
        return result

    async def _apply(
        self,
        batch: ImportBatch,
        result: ReconcileResult,
        owner_id: Optional[int],
    ) -> None:
        for kind, records in batch.tables():
            spec = TABLE_SPECS[kind]
            counts = TableCounts()
            for record in records:
                outcome = await self._reconcile_record(spec, record, owner_id)
                setattr(counts, outcome, getattr(counts, outcome) + 1)
            result.add(kind, counts)

    async def _reconcile_record(
        self,
        spec: TableSpec,
        raw: dict,
        owner_id: Optional[int],
    ) -> str:
        """Validate one record, then insert-or-update-or-skip it inside its own atomic unit."""
        try:
            record = RECORD_MODELS[spec.kind].model_validate(raw)
        except ValidationError as e:
            logger.debug(
                "reconcile_record_invalid",
                table=spec.table,
                issues=len(e.errors()),
            )
            return SKIPPED

        try:
            async with self._store.transaction() as tx:
                if owner_id is not None and not await self._in_scope(tx, spec, record, owner_id):
                    logger.debug("reconcile_record_out_of_scope", table=spec.table)
                    return SKIPPED

                try:
                    await tx.execute(spec.insert_sql, spec.insert_params(record))
                    return INSERTED
                except DuplicateKeyError:
                    if not spec.has_update:
                        return SKIPPED

                updated = await tx.execute(spec.update_sql, spec.update_params(record))
                # No row matched the identifier: the conflict was on another key
                return UPDATED if updated.rowcount == 1 else SKIPPED
        except LedgerError as e:
            logger.debug(
                "reconcile_record_skipped",
                table=spec.table,
                error_code=e.code,
                error=str(e),
            )
            return SKIPPED

    async def _in_scope(
        self,
        tx: LedgerStore,
        spec: TableSpec,
        record: BaseModel,
        owner_id: int,
    ) -> bool:
        if spec.kind == TableKind.SAVING_ENTRY_GOALS:
            return (
                await tx.owns(OwnedEntity.SAVING_ENTRY, record.saving_entry_id, owner_id)
                and await tx.owns(OwnedEntity.SAVING_GOAL, record.goal_id, owner_id)
            )
        return record.owner_id == owner_id

    # =========================================================================
    # Export
    # =========================================================================

    async def export(self, owner_id: int) -> ExportSnapshot:
        """
        Snapshot everything one owner holds.

        Global categories are not included; link rows are included when
        their saving entry belongs to the owner.

        Raises:
            NotFound: If the user does not exist
        """
        user_row = await self._store.fetch_one(
            "SELECT id, name, email, created_at FROM users WHERE id = ?",
            (owner_id,),
        )
        if user_row is None:
            raise NotFound("user", owner_id)

        data: dict[str, list] = {}
        for kind in TableKind:
            spec = TABLE_SPECS[kind]
            columns = ", ".join(spec.columns)
            if kind == TableKind.SAVING_ENTRY_GOALS:
                rows = await self._store.fetch_all(
                    """
                    SELECT seg.saving_entry_id, seg.goal_id
                    FROM saving_entry_goals seg
                    JOIN saving_entries se ON seg.saving_entry_id = se.id
                    WHERE se.owner_id = ?
                    ORDER BY seg.saving_entry_id, seg.goal_id
                    """,
                    (owner_id,),
                )
            else:
                rows = await self._store.fetch_all(
                    f"SELECT {columns} FROM {spec.table} WHERE owner_id = ? ORDER BY id",
                    (owner_id,),
                )
            model = RECORD_MODELS[kind]
            data[kind.value] = [model.model_validate(row) for row in rows]

        snapshot = ExportSnapshot(
            user=User.model_validate(user_row),
            exported_at=datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0),
            data=ExportData(**data),
        )
        logger.info(
            "export_completed",
            owner_id=owner_id,
            records=snapshot.data.record_count(),
        )
        return snapshot
