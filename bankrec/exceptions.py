"""
Error taxonomy for the reconciliation engine.

Every error carries a stable code, a user-facing message and optional
debugging context, so the HTTP adapter can map it without inspecting text.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standardized error codes for client handling."""
    # Input errors (400)
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_CSV = "INVALID_CSV"
    MISSING_FIELD = "MISSING_FIELD"

    # Not found (404)
    NOT_FOUND = "NOT_FOUND"

    # State conflicts (409)
    CONFLICT = "CONFLICT"
    ALREADY_MATCHED = "ALREADY_MATCHED"
    RECONCILIATION_CLOSED = "RECONCILIATION_CLOSED"
    UNBALANCED = "UNBALANCED"

    # Collaborators (503)
    LEDGER_UNAVAILABLE = "LEDGER_UNAVAILABLE"


class ReconciliationError(Exception):
    """Base exception with structured error info."""

    code: ErrorCode = ErrorCode.VALIDATION_FAILED

    def __init__(
        self,
        message: str,
        detail: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        code: Optional[ErrorCode] = None,
    ):
        if code is not None:
            self.code = code
        self.message = message
        self.detail = detail
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response format."""
        result = {
            "error": self.code.value,
            "message": self.message,
        }
        if self.detail:
            result["detail"] = self.detail
        if self.context:
            result["context"] = self.context
        return result


class ValidationError(ReconciliationError):
    """Malformed input: missing field, unparsable value, bad parameter."""
    code = ErrorCode.VALIDATION_FAILED


class CSVParseError(ValidationError):
    """The uploaded batch could not be read at all."""
    code = ErrorCode.INVALID_CSV

    def __init__(self, detail: str):
        super().__init__(
            message="Could not read transaction batch",
            detail=detail,
        )


class NotFoundError(ReconciliationError):
    """Unknown statement, transaction, reconciliation, match or adjustment id."""
    code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            message=f"{entity} not found",
            context={"entity": entity, "id": str(entity_id)},
        )
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(ReconciliationError):
    """Operation not allowed in the current state."""
    code = ErrorCode.CONFLICT


class AlreadyMatchedError(ConflictError):
    code = ErrorCode.ALREADY_MATCHED


class ReconciliationClosedError(ConflictError):
    code = ErrorCode.RECONCILIATION_CLOSED

    def __init__(self, reconciliation_id: str):
        super().__init__(
            message="reconciliation is closed",
            context={"reconciliation_id": reconciliation_id},
        )


class UnbalancedReconciliationError(ConflictError):
    code = ErrorCode.UNBALANCED

    def __init__(self, reconciliation_id: str, difference: float):
        super().__init__(
            message="Cannot complete reconciliation with non-zero difference",
            detail=f"Current difference is {difference:.2f}. Add adjustments to balance.",
            context={
                "reconciliation_id": reconciliation_id,
                "difference": difference,
            },
        )


class DependencyError(ReconciliationError):
    """The ledger gateway (or another collaborator) is unavailable."""
    code = ErrorCode.LEDGER_UNAVAILABLE
