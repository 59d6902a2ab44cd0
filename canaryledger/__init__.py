"""
Canary Ledger

Version: 1.0.0

A ledger of time-locked, recipient-bound authentication records whose
security posture escalates when a quantum canary reports a threat.

A sender stores a message fingerprint with a credential, a recipient and an
unlock time. Only the recipient, only after the unlock time, and only with a
credential the configured verifier accepts, can authenticate the message.
While the canary's threat flag is raised, new messages are stored at the
ceiling security level and authenticated ones are escalated to it.

Usage:
    from canaryledger import (
        ManualClock,
        PlaceholderOracleVerifier,
        PlaceholderSignatureVerifier,
        create_system,
    )

    system = create_system(PlaceholderOracleVerifier(), PlaceholderSignatureVerifier(),
                           clock=ManualClock(1_700_000_000))

    message_id = system.store_message(
        sender="alice", fingerprint=digest, credential=secret,
        recipient="bob", unlock_time=1_700_003_600, security_level=2,
    )

    system.update_canary(4, oracle_credential)   # threat mode on
    system.authenticate_message("bob", message_id, secret)   # after unlock

Every committed operation is appended to a hash-chained event log that can
be exported and verified offline.
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

# Records and errors
from .models import (
    CanaryStatus,
    Message,
    MessageState,
    MAX_SECURITY_LEVEL,
    MIN_SECURITY_LEVEL,
    THREAT_THRESHOLD,
)
from .errors import (
    ErrorCategory,
    FailureCode,
    LedgerError,
    InvalidRecipient,
    UnlockInPast,
    UnlockOutOfRange,
    InvalidSecurityLevel,
    InvalidThreatLevel,
    InvalidFingerprint,
    MissingCredential,
    Unauthorized,
    StillLocked,
    RateLimited,
    InvalidCredential,
    NotFound,
    ConfigurationError,
    StorageError,
)

# Time
from .clock import Clock, SystemClock, ManualClock

# Verification
from .verifiers import (
    OracleVerifier,
    SignatureVerifier,
    PlaceholderOracleVerifier,
    PlaceholderSignatureVerifier,
    Ed25519OracleVerifier,
    Ed25519SignatureVerifier,
    generate_key_pair,
    sign_challenge,
    sign_oracle_report,
)

# Events and storage
from .events import EventKind, LedgerEvent, EventLog, ChainVerification, verify_chain
from .storage import LedgerBackend, InMemoryBackend, SqliteBackend

# Components
from .state import LedgerState
from .canary import QuantumCanary
from .ledger import MessageLedger
from .queries import QueryService
from .system import LedgerSystem, create_system, build_system


__all__ = [
    # Version
    "__version__",

    # Records
    "CanaryStatus",
    "Message",
    "MessageState",
    "MAX_SECURITY_LEVEL",
    "MIN_SECURITY_LEVEL",
    "THREAT_THRESHOLD",

    # Errors
    "ErrorCategory",
    "FailureCode",
    "LedgerError",
    "InvalidRecipient",
    "UnlockInPast",
    "UnlockOutOfRange",
    "InvalidSecurityLevel",
    "InvalidThreatLevel",
    "InvalidFingerprint",
    "MissingCredential",
    "Unauthorized",
    "StillLocked",
    "RateLimited",
    "InvalidCredential",
    "NotFound",
    "ConfigurationError",
    "StorageError",

    # Time
    "Clock",
    "SystemClock",
    "ManualClock",

    # Verification
    "OracleVerifier",
    "SignatureVerifier",
    "PlaceholderOracleVerifier",
    "PlaceholderSignatureVerifier",
    "Ed25519OracleVerifier",
    "Ed25519SignatureVerifier",
    "generate_key_pair",
    "sign_challenge",
    "sign_oracle_report",

    # Events and storage
    "EventKind",
    "LedgerEvent",
    "EventLog",
    "ChainVerification",
    "verify_chain",
    "LedgerBackend",
    "InMemoryBackend",
    "SqliteBackend",

    # Components
    "LedgerState",
    "QuantumCanary",
    "MessageLedger",
    "QueryService",
    "LedgerSystem",
    "create_system",
    "build_system",
]
