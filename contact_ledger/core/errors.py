"""Error hierarchy for the coin ledger and contact-allocation engine.

Every rejected operation raises exactly one LedgerError subclass. Nothing is
applied when one is raised: the surrounding transaction is rolled back.

Categories:
    - validation: bad input, rejected before any state is read
    - conflict: the operation no longer applies to the current state; do not retry
    - resource: business-rule rejection (balance, approval, ownership, existence)
    - transient: lock contention / storage timeout; retry the whole operation
"""
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    RESOURCE = "resource"
    TRANSIENT = "transient"


class LedgerError(Exception):
    """Base exception for all typed rejections."""

    code = "LEDGER_ERROR"
    category = ErrorCategory.CONFLICT
    http_status = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def retryable(self) -> bool:
        return self.category is ErrorCategory.TRANSIENT

    def to_response(self) -> dict:
        """Convert to the REST error envelope."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "retryable": self.retryable,
                "details": self.details,
            }
        }


# ─── Validation ─────────────────────────────────────────────────

class InvalidAmount(LedgerError):
    code = "INVALID_AMOUNT"
    category = ErrorCategory.VALIDATION
    http_status = 400

    def __init__(self, amount: Any):
        super().__init__(f"Amount must be a positive integer, got {amount!r}", amount=amount)


class ReasonTooShort(LedgerError):
    code = "REASON_TOO_SHORT"
    category = ErrorCategory.VALIDATION
    http_status = 400

    def __init__(self, min_length: int, length: int):
        super().__init__(
            f"Refund reason must have at least {min_length} characters",
            min_length=min_length,
            length=length,
        )


# ─── Conflict ───────────────────────────────────────────────────

class AlreadyUnlocked(LedgerError):
    code = "ALREADY_UNLOCKED"
    http_status = 409

    def __init__(self, request_id: str, account_id: str):
        super().__init__(
            "Contact already unlocked for this request",
            request_id=request_id,
            account_id=account_id,
        )


class SlotsFull(LedgerError):
    code = "SLOTS_FULL"
    http_status = 409

    def __init__(self, request_id: str, max_slots: int):
        super().__init__(
            f"All {max_slots} contact slots of this request are taken",
            request_id=request_id,
            max_slots=max_slots,
        )


class ExclusivityConflict(LedgerError):
    code = "EXCLUSIVITY_CONFLICT"
    http_status = 409

    def __init__(self, request_id: str, message: str):
        super().__init__(message, request_id=request_id)


class RequestNotOpen(LedgerError):
    code = "REQUEST_NOT_OPEN"
    http_status = 409

    def __init__(self, request_id: str, status: str):
        super().__init__(f"Service request is {status}", request_id=request_id, status=status)


class AlreadyRequested(LedgerError):
    code = "ALREADY_REQUESTED"
    http_status = 409

    def __init__(self, allocation_id: str, status: str):
        super().__init__(
            f"A refund for this allocation already exists ({status})",
            allocation_id=allocation_id,
            status=status,
        )


class AlreadyResolved(LedgerError):
    code = "ALREADY_RESOLVED"
    http_status = 409

    def __init__(self, refund_id: str, status: str):
        super().__init__(f"Refund request is already {status}", refund_id=refund_id, status=status)


class AllocationNotActive(LedgerError):
    code = "ALLOCATION_NOT_ACTIVE"
    http_status = 409

    def __init__(self, allocation_id: str, status: str):
        super().__init__(f"Allocation is {status}", allocation_id=allocation_id, status=status)


class GuaranteeWindowExpired(LedgerError):
    code = "GUARANTEE_WINDOW_EXPIRED"
    http_status = 409

    def __init__(self, allocation_id: str, window_days: int):
        super().__init__(
            f"Automatic guarantee is only available within {window_days} days of the unlock",
            allocation_id=allocation_id,
            window_days=window_days,
        )


# ─── Resource ───────────────────────────────────────────────────

class InsufficientBalance(LedgerError):
    code = "INSUFFICIENT_BALANCE"
    category = ErrorCategory.RESOURCE
    http_status = 402

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Insufficient balance: {required} coins required, {available} available",
            required=required,
            available=available,
            missing=required - available,
        )


class AccountNotApproved(LedgerError):
    code = "ACCOUNT_NOT_APPROVED"
    category = ErrorCategory.RESOURCE
    http_status = 403

    def __init__(self, account_id: str, approved: bool, banned: bool = False):
        message = "Account is banned" if banned else "Account is pending approval"
        super().__init__(message, account_id=account_id, approved=approved, banned=banned)


class NotOwner(LedgerError):
    code = "NOT_OWNER"
    category = ErrorCategory.RESOURCE
    http_status = 403

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} does not belong to this account", resource_id=resource_id)


class NotFound(LedgerError):
    code = "NOT_FOUND"
    category = ErrorCategory.RESOURCE
    http_status = 404

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} '{resource_id}' not found", resource=resource, resource_id=resource_id)


# ─── Transient ──────────────────────────────────────────────────

class Retryable(LedgerError):
    code = "RETRYABLE"
    category = ErrorCategory.TRANSIENT
    http_status = 503

    def __init__(self, operation: str, cause: str | None = None):
        super().__init__(
            "Operation could not commit, retry it from the start",
            operation=operation,
            cause=cause,
        )
