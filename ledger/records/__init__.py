"""Record management flows."""

from ledger.records.service import LedgerRecords

__all__ = ["LedgerRecords"]
