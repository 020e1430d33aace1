"""Validation package."""

from ledger.validation.validator import RecordValidator

__all__ = ["RecordValidator"]
