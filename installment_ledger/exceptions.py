"""
Typed exceptions for the installment ledger.

Every rejected precondition surfaces as its own class so callers can catch by
type. Each error carries a machine-readable ``code`` and the HTTP status the
API layer answers with.

    LedgerError
    +-- NotFoundError
    +-- ImmutableEntryError
    +-- OutOfOrderEditError
    +-- ValidationError
    +-- IntegrityError
    +-- ConcurrentModificationError
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all ledger errors"""

    code: str = "LEDGER_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        result = {"code": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class NotFoundError(LedgerError):
    """A payment entry or plan does not exist"""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(
            f"{entity_type.capitalize()} {entity_id} not found",
            {"entity_type": entity_type, "entity_id": entity_id}
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class ImmutableEntryError(LedgerError):
    """Attempt to alter an entry whose history is settled"""

    code = "IMMUTABLE_ENTRY"
    status_code = 409

    def __init__(self, entry_id: str, status: str, reason: Optional[str] = None):
        super().__init__(
            reason or f"Payment {entry_id} is {status} and can no longer be modified",
            {"entry_id": entry_id, "status": status}
        )
        self.entry_id = entry_id
        self.status = status


class OutOfOrderEditError(LedgerError):
    """Attempt to re-touch a Partial entry that is not the open tail"""

    code = "OUT_OF_ORDER_EDIT"
    status_code = 409

    def __init__(self, entry_id: str, blocking_entry_id: str):
        super().__init__(
            f"Payment {entry_id} is not the last open payment of its plan; "
            f"payment {blocking_entry_id} follows it",
            {"entry_id": entry_id, "blocking_entry_id": blocking_entry_id}
        )
        self.entry_id = entry_id
        self.blocking_entry_id = blocking_entry_id


class ValidationError(LedgerError):
    """Input out of bounds or request conflicting with current ledger state"""

    code = "VALIDATION_ERROR"
    status_code = 400


class IntegrityError(LedgerError):
    """Stored records reference each other inconsistently"""

    code = "INTEGRITY_ERROR"
    status_code = 500


class ConcurrentModificationError(LedgerError):
    """An entry changed between read and write"""

    code = "CONCURRENT_MODIFICATION"
    status_code = 409

    def __init__(self, entry_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Payment {entry_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})",
            {"entry_id": entry_id, "expected_version": expected_version,
             "actual_version": actual_version}
        )
        self.entry_id = entry_id
