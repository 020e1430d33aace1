"""Validation result models shared by the record validator and batch parsing."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, ValidationError


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'wrong_sign', 'past_date')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix for the caller"
    )

    @classmethod
    def from_validation_error(
        cls,
        exc: ValidationError,
        prefix: Optional[str] = None,
    ) -> list["ValidationIssue"]:
        """Convert pydantic errors into error-level issues, one per failing location."""
        issues = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()))
            if prefix:
                location = f"{prefix}.{location}" if location else prefix
            issues.append(cls(
                field=location or "record",
                issue_type=error.get("type", "invalid"),
                message=error.get("msg", "Invalid value"),
                severity="error",
            ))
        return issues


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, required fields, sign invariant)
    Stage 2: Semantic validation (checks that depend on today or on the record as a whole)
    """

    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc).replace(tzinfo=None)
    )
    record_type: str = Field(
        ...,
        description="Name of the model being validated"
    )

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
