"""
Precondition gates for ledger and canary operations.

Each gate is a deterministic check that returns None when satisfied or the
LedgerError describing why not. Operations compose them in a fixed order
with enforce(), which raises the first failure; no gate mutates state.
"""

from typing import Any, Optional

from .errors import (
    InvalidCredential,
    InvalidFingerprint,
    InvalidRecipient,
    InvalidSecurityLevel,
    InvalidThreatLevel,
    LedgerError,
    MissingCredential,
    NotFound,
    RateLimited,
    StillLocked,
    Unauthorized,
    UnlockInPast,
    UnlockOutOfRange,
)
from .models import (
    FINGERPRINT_SIZE,
    MAX_SECURITY_LEVEL,
    MAX_THREAT_LEVEL,
    MAX_TIMESTAMP,
    MIN_SECURITY_LEVEL,
    CanaryStatus,
    Message,
    is_null_identity,
)
from .verifiers import OracleVerifier, SignatureVerifier

Gate = Optional[LedgerError]


def enforce(*results: Gate) -> None:
    """Raise the first failed gate, in argument order."""
    for result in results:
        if result is not None:
            raise result


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# ============================================================
# Input validation
# ============================================================

def gate_recipient(recipient: Optional[str]) -> Gate:
    if is_null_identity(recipient):
        return InvalidRecipient("Recipient must not be the null identity")
    return None


def gate_sender(sender: Optional[str]) -> Gate:
    if is_null_identity(sender):
        return Unauthorized("Sender must not be the null identity")
    return None


def gate_unlock_in_future(unlock_time: int, now: int) -> Gate:
    if not _is_int(unlock_time) or unlock_time <= now:
        return UnlockInPast(f"Unlock time {unlock_time} must be after {now}", now=now)
    if unlock_time > MAX_TIMESTAMP:
        return UnlockOutOfRange(f"Unlock time must not exceed {MAX_TIMESTAMP}")
    return None


def gate_security_level(level: Any) -> Gate:
    if not _is_int(level) or not MIN_SECURITY_LEVEL <= level <= MAX_SECURITY_LEVEL:
        return InvalidSecurityLevel(
            f"Security level must be in [{MIN_SECURITY_LEVEL}, {MAX_SECURITY_LEVEL}], got {level!r}"
        )
    return None


def gate_threat_level(level: Any) -> Gate:
    if not _is_int(level) or not 0 <= level <= MAX_THREAT_LEVEL:
        return InvalidThreatLevel(f"Threat level must be in [0, {MAX_THREAT_LEVEL}], got {level!r}")
    return None


def gate_credential_present(credential: Optional[bytes], field: str = "credential") -> Gate:
    if not credential:
        return MissingCredential(f"{field} must not be empty")
    return None


def gate_fingerprint(fingerprint: Any) -> Gate:
    if not isinstance(fingerprint, (bytes, bytearray)) or len(fingerprint) != FINGERPRINT_SIZE:
        return InvalidFingerprint(f"Fingerprint must be exactly {FINGERPRINT_SIZE} bytes")
    return None


# ============================================================
# Record gates
# ============================================================

def gate_exists(message: Optional[Message], message_id: Any) -> Gate:
    if message is None:
        return NotFound(f"Message {message_id} not found", message_id=message_id)
    return None


def gate_recipient_is_caller(message: Message, caller: Optional[str]) -> Gate:
    if caller != message.recipient:
        return Unauthorized(f"Caller is not the recipient of message {message.message_id}",
                            message_id=message.message_id)
    return None


def gate_unlocked(message: Message, now: int) -> Gate:
    if not message.is_unlocked(now):
        return StillLocked(
            f"Message {message.message_id} unlocks at {message.unlock_time}",
            message_id=message.message_id,
            unlock_time=message.unlock_time,
        )
    return None


def gate_signature(
    verifier: SignatureVerifier,
    message: Message,
    credential: bytes,
    caller: str
) -> Gate:
    if not verifier.verify(message.message_id, credential, message.credential, caller):
        return InvalidCredential(f"Credential rejected for message {message.message_id}",
                                 message_id=message.message_id)
    return None


# ============================================================
# Canary gates
# ============================================================

def gate_canary_interval(status: CanaryStatus, now: int, interval: int) -> Gate:
    next_allowed = status.last_checked + interval
    if now < next_allowed:
        return RateLimited(
            f"Canary may next be updated at {next_allowed}",
            retry_after=next_allowed - now,
            next_allowed=next_allowed,
        )
    return None


def gate_oracle(verifier: OracleVerifier, credential: bytes) -> Gate:
    if not verifier.verify(credential):
        return InvalidCredential("Oracle credential rejected")
    return None
