"""
Error taxonomy for the canary ledger.

Every rejected operation raises a LedgerError subclass carrying a
machine-readable reason code and a category. Errors are raised before any
state is mutated, so a caller can always retry after fixing the cause.

Categories:
    VALIDATION     - malformed or out-of-range input
    AUTHORIZATION  - wrong caller identity
    TEMPORAL       - too early (time lock or canary interval)
    INTEGRITY      - credential verification failed
    NOT_FOUND      - unknown message id
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Broad class of a failure, used for retry decisions and HTTP mapping."""
    VALIDATION = "VALIDATION"
    AUTHORIZATION = "AUTHORIZATION"
    TEMPORAL = "TEMPORAL"
    INTEGRITY = "INTEGRITY"
    NOT_FOUND = "NOT_FOUND"


class FailureCode(str, Enum):
    """Distinguishing reason attached to every LedgerError."""
    INVALID_RECIPIENT = "INVALID_RECIPIENT"
    UNLOCK_IN_PAST = "UNLOCK_IN_PAST"
    UNLOCK_OUT_OF_RANGE = "UNLOCK_OUT_OF_RANGE"
    INVALID_SECURITY_LEVEL = "INVALID_SECURITY_LEVEL"
    INVALID_THREAT_LEVEL = "INVALID_THREAT_LEVEL"
    INVALID_FINGERPRINT = "INVALID_FINGERPRINT"
    MISSING_CREDENTIAL = "MISSING_CREDENTIAL"
    UNAUTHORIZED = "UNAUTHORIZED"
    STILL_LOCKED = "STILL_LOCKED"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    NOT_FOUND = "NOT_FOUND"


class LedgerError(Exception):
    """Base class for all rejected ledger and canary operations."""

    reason: FailureCode
    category: ErrorCategory

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.details = details
        super().__init__(message or self.reason.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason.value,
            "category": self.category.value,
            "message": str(self),
            "details": self.details,
        }


# ============================================================
# Validation errors
# ============================================================

class ValidationError(LedgerError):
    category = ErrorCategory.VALIDATION


class InvalidRecipient(ValidationError):
    reason = FailureCode.INVALID_RECIPIENT


class UnlockInPast(ValidationError):
    """Unlock time is not strictly in the future."""
    reason = FailureCode.UNLOCK_IN_PAST


class UnlockOutOfRange(ValidationError):
    """Unlock time is beyond the largest storable timestamp."""
    reason = FailureCode.UNLOCK_OUT_OF_RANGE


class InvalidSecurityLevel(ValidationError):
    reason = FailureCode.INVALID_SECURITY_LEVEL


class InvalidThreatLevel(ValidationError):
    reason = FailureCode.INVALID_THREAT_LEVEL


class InvalidFingerprint(ValidationError):
    reason = FailureCode.INVALID_FINGERPRINT


class MissingCredential(ValidationError):
    reason = FailureCode.MISSING_CREDENTIAL


# ============================================================
# Authorization / temporal / integrity / lookup errors
# ============================================================

class Unauthorized(LedgerError):
    reason = FailureCode.UNAUTHORIZED
    category = ErrorCategory.AUTHORIZATION


class TemporalError(LedgerError):
    category = ErrorCategory.TEMPORAL


class StillLocked(TemporalError):
    reason = FailureCode.STILL_LOCKED


class RateLimited(TemporalError):
    """Canary update attempted before the minimum interval elapsed."""
    reason = FailureCode.RATE_LIMITED

    def __init__(self, message: Optional[str] = None, retry_after: int = 0, **details: Any):
        self.retry_after = retry_after
        super().__init__(message, retry_after=retry_after, **details)


class InvalidCredential(LedgerError):
    reason = FailureCode.INVALID_CREDENTIAL
    category = ErrorCategory.INTEGRITY


class NotFound(LedgerError):
    reason = FailureCode.NOT_FOUND
    category = ErrorCategory.NOT_FOUND


# ============================================================
# Infrastructure errors (not part of the operation taxonomy)
# ============================================================

class ConfigurationError(Exception):
    """Raised when settings are invalid or unsafe for the environment."""


class StorageError(Exception):
    """Raised when a storage backend fails to commit a transaction."""
