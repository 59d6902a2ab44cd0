"""
Record types for the canary ledger.

Message and CanaryStatus are frozen dataclasses: a change (escalation, canary
update) produces a new record rather than mutating one in place, so a
snapshot handed to a caller never changes underneath them.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from .hashing import sha256_hex

MIN_SECURITY_LEVEL = 1
MAX_SECURITY_LEVEL = 5
MAX_THREAT_LEVEL = 5
THREAT_THRESHOLD = 3
QUANTUM_SECURE_LEVEL = 3
FINGERPRINT_SIZE = 32

# Largest timestamp a signed 64-bit column can hold.
MAX_TIMESTAMP = 2 ** 63 - 1

NULL_IDENTITY = "0x0000000000000000000000000000000000000000"


def is_null_identity(identity: Optional[str]) -> bool:
    """True for None, the empty string, or the all-zero address."""
    if not identity:
        return True
    return identity.strip().lower() in ("", NULL_IDENTITY)


def is_quantum_secure(security_level: int, threat_detected: bool) -> bool:
    return security_level >= QUANTUM_SECURE_LEVEL or threat_detected


class MessageState(str, Enum):
    """Observable lifecycle state of a stored message."""
    LOCKED = "LOCKED"
    UNLOCKABLE = "UNLOCKABLE"
    AUTHENTICATED = "AUTHENTICATED"


@dataclass(frozen=True)
class Message:
    """A time-locked ledger record."""
    message_id: int
    fingerprint: bytes
    credential: bytes
    created_at: int
    unlock_time: int
    sender: str
    recipient: str
    quantum_secure: bool
    security_level: int
    requested_level: int

    def escalated(self) -> "Message":
        """
        Return this record raised to the ceiling level.

        Calling this on a record already at the ceiling returns an equal
        record.
        """
        return replace(self, security_level=MAX_SECURITY_LEVEL, quantum_secure=True)

    def is_unlocked(self, now: int) -> bool:
        return now >= self.unlock_time

    def to_dict(self, include_credential: bool = False) -> Dict[str, Any]:
        data = {
            "message_id": self.message_id,
            "fingerprint": self.fingerprint.hex(),
            "credential_hash": sha256_hex(self.credential),
            "created_at": self.created_at,
            "unlock_time": self.unlock_time,
            "sender": self.sender,
            "recipient": self.recipient,
            "quantum_secure": self.quantum_secure,
            "security_level": self.security_level,
            "requested_level": self.requested_level,
        }
        if include_credential:
            data["credential"] = self.credential.hex()
        return data


@dataclass(frozen=True)
class CanaryStatus:
    """Snapshot of the quantum canary."""
    last_checked: int
    threat_level: int = 0
    threat_detected: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_checked": self.last_checked,
            "threat_level": self.threat_level,
            "threat_detected": self.threat_detected,
        }

    @classmethod
    def initial(cls, start_time: int) -> "CanaryStatus":
        return cls(last_checked=start_time, threat_level=0, threat_detected=False)
