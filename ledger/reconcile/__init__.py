"""Import/export reconciliation."""

from ledger.reconcile.engine import ReconciliationEngine
from ledger.reconcile.tables import TABLE_SPECS, TableSpec

__all__ = [
    "ReconciliationEngine",
    "TABLE_SPECS",
    "TableSpec",
]
