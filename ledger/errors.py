"""
Domain Errors

Every failure the core hands back to its caller is a LedgerError.

NotFound, InvalidState, InvalidInput and Conflict are expected outcomes
of a request and are returned to the caller verbatim. Storage failures
are defined next to the storage interface and share the same base.
"""

from typing import Any, Optional


class LedgerError(Exception):
    """Base exception for ledger operations."""

    code: str = "ledger_error"
    retryable: bool = False


class NotFound(LedgerError):
    """Referenced entity is absent or not owned by the caller."""

    code = "not_found"

    def __init__(
        self,
        entity: str,
        entity_id: Any = None,
        message: Optional[str] = None,
    ):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} not found: {entity_id}")


class InvalidState(LedgerError):
    """Operation is not legal in the entity's current lifecycle state."""

    code = "invalid_state"

    def __init__(self, message: str, current_state: Optional[str] = None):
        self.current_state = current_state
        super().__init__(message)


class InvalidInput(LedgerError):
    """
    A value fails a domain invariant.

    Carries the structured validation issues when they are known, so the
    HTTP layer can report them field by field.
    """

    code = "invalid_input"

    def __init__(self, message: str, issues: Optional[list] = None):
        self.issues = list(issues or [])
        super().__init__(message)


class MissingAccount(InvalidInput):
    """No account could be resolved for a planned payment execution."""

    code = "missing_account"


class Conflict(LedgerError):
    """Uniqueness violation not absorbed by a reconciliation update."""

    code = "conflict"
