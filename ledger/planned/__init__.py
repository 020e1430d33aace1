"""Planned payment lifecycle."""

from ledger.planned.state_machine import (
    PlannedPaymentStateMachine,
    ledger_amount,
)

__all__ = [
    "PlannedPaymentStateMachine",
    "ledger_amount",
]
