"""Error kinds raised by the inventory ledger.

Each error carries a stable ``kind`` string and a caller-safe message; the
REST layer maps kinds to status codes (see ``main.py``).
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    kind = "ledger_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(LedgerError):
    """Bad input shape or range. ``fields`` maps every offending field to its problem."""

    kind = "validation_error"

    def __init__(self, fields: Dict[str, str], message: str = "Invalid input"):
        super().__init__(message)
        self.fields = dict(fields)

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["fields"] = self.fields
        return out


class InvalidReason(ValidationError):
    kind = "invalid_reason"

    def __init__(self, problem: str):
        super().__init__({"reason": problem}, message=problem)


class NotFound(LedgerError):
    # Absent and foreign-owned items are indistinguishable
    kind = "not_found"

    def __init__(self, message: str = "Item not found"):
        super().__init__(message)


class InvalidAdjustment(LedgerError):
    kind = "invalid_adjustment"

    def __init__(self, message: str = "Adjustment cannot be zero"):
        super().__init__(message)


class NegativeResult(LedgerError):
    kind = "negative_result"

    def __init__(self, current, delta):
        super().__init__("Quantity cannot be negative")
        self.current = current
        self.delta = delta

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["current_quantity"] = float(self.current)
        out["delta"] = float(self.delta)
        return out


class StorageError(LedgerError):
    """A storage call failed. The underlying driver error is kept on ``__cause__`` only."""

    kind = "storage_error"

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message)


class StorageTimeout(StorageError):
    kind = "storage_timeout"
    retryable = True

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"Storage operation '{operation}' timed out after {timeout}s")
        self.operation = operation
        self.timeout = timeout


class DuplicateKey(StorageError):
    """An adjustment with this idempotency key is already recorded for the item."""

    kind = "duplicate_key"

    def __init__(self, item_id, key: str):
        super().__init__(f"Idempotency key '{key}' already used for item {item_id}")
        self.item_id = item_id
        self.key = key


class PartialFailure(LedgerError):
    """The item write and the adjustment-record write diverged and need reconciliation."""

    kind = "partial_failure"

    def __init__(
        self,
        operation: str,
        item_id,
        item_written: bool,
        adjustment_written: bool,
        detail: Optional[str] = None,
    ):
        super().__init__(
            detail or f"{operation} left item {item_id} and its adjustment log out of sync"
        )
        self.operation = operation
        self.item_id = item_id
        self.item_written = item_written
        self.adjustment_written = adjustment_written

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update(
            {
                "operation": self.operation,
                "item_id": str(self.item_id),
                "item_written": self.item_written,
                "adjustment_written": self.adjustment_written,
            }
        )
        return out


class Unauthorized(LedgerError):
    kind = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)
