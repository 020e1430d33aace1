"""
Two-Stage Record Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking
- Required field presence
- Format validation
- Sign invariant on transaction amounts
- This is the pydantic model itself

STAGE 2 - SEMANTIC VALIDATION:
- Checks that depend on today's date
- Checks on the record as a whole (an empty patch)
- This catches values that are well formed but not acceptable

Stage 2 is skipped when stage 1 fails: a record that did not parse has no
semantics to check.

IMPORTANT: Validation NEVER silently fixes issues.
Errors reject the record; warnings are reported and the record goes through.
"""

from datetime import date, timedelta
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from ledger.config import LedgerSettings, get_settings
from ledger.errors import InvalidInput
from ledger.log import get_logger
from ledger.models.inputs import (
    AccountPatch,
    PlannedPaymentCreate,
    SavingGoalCreate,
    TransactionCreate,
)
from ledger.models.validation import ValidationIssue, ValidationResult


logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class RecordValidator:
    """
    Validates inbound records before they reach the core.

    Stage 1: Schema validation (pydantic)
    Stage 2: Semantic validation (today-relative and whole-record checks)
    """

    def __init__(
        self,
        settings: Optional[LedgerSettings] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize validator.

        Args:
            settings: Ledger conventions; defaults to the process settings
            today: Clock used for date checks; defaults to date.today
        """
        self._settings = settings or get_settings().ledger
        self._today = today or date.today

    def _validate_schema(
        self,
        raw: Any,
        model: type[M],
    ) -> tuple[Optional[M], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (record_or_None, list_of_issues)
        """
        if isinstance(raw, model):
            return raw, []
        try:
            return model.model_validate(raw), []
        except ValidationError as e:
            return None, ValidationIssue.from_validation_error(e)

    def _validate_semantic(self, record: BaseModel) -> list[ValidationIssue]:
        """
        Stage 2: Semantic validation.

        Checks:
        - Goal target date not in the past
        - Patch carries at least one change
        - Transaction date not far in the future
        - Planned payment not already overdue
        """
        issues = []
        today = self._today()

        if isinstance(record, SavingGoalCreate) and record.target_date < today:
            issues.append(ValidationIssue(
                field="target_date",
                issue_type="past_date",
                message=f"Target date ({record.target_date}) is in the past",
                severity="error",
                suggested_fix="Choose a target date of today or later",
            ))

        if isinstance(record, AccountPatch) and record.is_empty:
            issues.append(ValidationIssue(
                field="patch",
                issue_type="empty",
                message="No fields to update",
                severity="error",
                suggested_fix="Provide at least one of name, currency, is_active",
            ))

        if isinstance(record, TransactionCreate):
            max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
            if record.txn_date > max_future_date:
                issues.append(ValidationIssue(
                    field="txn_date",
                    issue_type="future_date",
                    message=f"Transaction date ({record.txn_date}) is in the future",
                    severity="warning",
                    suggested_fix="Please verify the date is correct",
                ))

        if isinstance(record, PlannedPaymentCreate) and record.due_date < today:
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="past_date",
                message=f"Due date ({record.due_date}) has already passed",
                severity="warning",
                suggested_fix="Execute or cancel it once it is settled",
            ))

        return issues

    def validate(self, raw: Any, model: type[M]) -> ValidationResult:
        """
        Run the full two-stage pipeline.

        Args:
            raw: A dict of raw values, or an already-built model instance
            model: The input model the record must conform to

        Returns:
            ValidationResult with all issues found
        """
        _, result = self._run(raw, model)
        return result

    def _run(self, raw: Any, model: type[M]) -> tuple[Optional[M], ValidationResult]:
        record, issues = self._validate_schema(raw, model)
        schema_valid = record is not None

        semantic_valid = False
        if schema_valid:
            semantic_issues = self._validate_semantic(record)
            issues.extend(semantic_issues)
            semantic_valid = not any(i.severity == "error" for i in semantic_issues)

        result = ValidationResult(
            record_type=model.__name__,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=issues,
            warnings=[i.message for i in issues if i.severity == "warning"],
        )
        return record, result

    def parse(self, raw: Any, model: type[M]) -> M:
        """
        Validate raw input and return the typed record.

        Raises:
            InvalidInput: If either stage reports an error
        """
        record, result = self._run(raw, model)
        self._raise_for(result)
        return record

    def check(self, record: BaseModel) -> ValidationResult:
        """
        Run stage 2 on a record that is already typed.

        Raises:
            InvalidInput: If a semantic error is found
        """
        result = self.validate(record, type(record))
        self._raise_for(result)
        return result

    def _raise_for(self, result: ValidationResult) -> None:
        if result.warnings:
            logger.info(
                "validation_warnings",
                record_type=result.record_type,
                warnings=result.warnings,
            )
        if result.has_errors:
            logger.debug(
                "validation_rejected",
                record_type=result.record_type,
                error_count=result.error_count,
            )
            raise InvalidInput(self.summarize(result), issues=result.issues)

    def summarize(self, result: ValidationResult) -> str:
        """One-line description of what failed, for error messages."""
        if result.is_valid:
            return f"{result.record_type} is valid"
        errors = [
            f"{issue.field}: {issue.message}"
            for issue in result.issues
            if issue.severity == "error"
        ]
        return f"Invalid {result.record_type}: " + "; ".join(errors)
