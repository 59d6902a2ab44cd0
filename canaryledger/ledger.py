"""
Message ledger: admission and gated authentication of time-locked messages.

The ledger is append-only. Messages are created by store() and changed only
by authenticate(), which may raise a record's security level while the
quantum canary signals a threat. Levels never decrease.

Critical invariants:
    - ids are 1, 2, 3, ... with no gaps; a rejected store allocates nothing
    - unlock_time, sender and recipient never change after creation
    - quantum_secure holds whenever security_level >= 3 or a threat was
      active at creation or escalation time
"""

from typing import Optional

from . import gates
from .canary import QuantumCanary
from .errors import InvalidCredential, LedgerError
from .events import EventKind
from .logging_config import audit_log
from .models import MAX_SECURITY_LEVEL, Message, is_quantum_secure
from .state import LedgerState
from .verifiers import SignatureVerifier


class MessageLedger:
    """
    Owns all Message records and per-sender counters.

    Usage:
        ledger = MessageLedger(state, canary, signature_verifier)
        message_id = ledger.store(sender, fingerprint, credential, recipient, unlock_time, 2)
        ...
        ledger.authenticate(message_id, auth_credential, caller=recipient)
    """

    def __init__(
        self,
        state: LedgerState,
        canary: QuantumCanary,
        signature_verifier: SignatureVerifier
    ):
        self._state = state
        self._canary = canary
        self._verifier = signature_verifier

    def store(
        self,
        sender: str,
        fingerprint: bytes,
        credential: bytes,
        recipient: str,
        unlock_time: int,
        requested_level: int
    ) -> int:
        """
        Admit a new time-locked message.

        While the canary signals a threat, the effective level is forced to
        the ceiling regardless of requested_level.

        Args:
            sender: Caller identity, recorded as the message sender
            fingerprint: 32-byte content digest
            credential: Authentication credential checked on authenticate()
            recipient: Only identity allowed to authenticate the message
            unlock_time: Earliest epoch second at which authenticate() may succeed
            requested_level: Security level 1..5

        Returns:
            The new message id

        Raises:
            Unauthorized, InvalidRecipient, UnlockInPast, UnlockOutOfRange,
            InvalidSecurityLevel, MissingCredential, InvalidFingerprint
        """
        try:
            with self._state.transaction() as tx:
                gates.enforce(
                    gates.gate_sender(sender),
                    gates.gate_recipient(recipient),
                    gates.gate_unlock_in_future(unlock_time, tx.now),
                    gates.gate_security_level(requested_level),
                    gates.gate_credential_present(credential),
                    gates.gate_fingerprint(fingerprint),
                )

                threat_detected = self._canary.threat_detected
                level = MAX_SECURITY_LEVEL if threat_detected else requested_level

                message = Message(
                    message_id=tx.allocate_message_id(),
                    fingerprint=bytes(fingerprint),
                    credential=bytes(credential),
                    created_at=tx.now,
                    unlock_time=unlock_time,
                    sender=sender,
                    recipient=recipient,
                    quantum_secure=is_quantum_secure(level, threat_detected),
                    security_level=level,
                    requested_level=requested_level,
                )
                tx.put_message(message)
                tx.put_sender_count(sender, self._state.sender_count(sender) + 1)
                tx.emit(
                    EventKind.MESSAGE_STORED,
                    message_id=message.message_id,
                    sender=sender,
                    recipient=recipient,
                )
        except LedgerError as e:
            audit_log.store_rejected(sender, e.reason.value)
            raise

        audit_log.message_stored(
            message.message_id, sender, recipient,
            message.security_level, requested_level, message.quantum_secure
        )
        return message.message_id

    def authenticate(self, message_id: int, credential: bytes, caller: str) -> bool:
        """
        Authenticate the recipient of an unlocked message.

        A success while the canary signals a threat also escalates the
        record to the ceiling level (SECURITY_LEVEL_UPGRADED). Repeating a
        successful call is valid and changes nothing further.

        Returns:
            True

        Raises:
            NotFound, Unauthorized, StillLocked, MissingCredential,
            InvalidCredential
        """
        escalated_from: Optional[int] = None
        try:
            with self._state.transaction() as tx:
                message = self._state.get_message(message_id)
                gates.enforce(gates.gate_exists(message, message_id))
                gates.enforce(
                    gates.gate_recipient_is_caller(message, caller),
                    gates.gate_unlocked(message, tx.now),
                    gates.gate_credential_present(credential),
                )
                gates.enforce(gates.gate_signature(self._verifier, message, credential, caller))

                if self._canary.threat_detected and message.security_level < MAX_SECURITY_LEVEL:
                    escalated_from = message.security_level
                    message = message.escalated()
                    tx.put_message(message)
                    tx.emit(
                        EventKind.SECURITY_LEVEL_UPGRADED,
                        message_id=message_id,
                        new_level=message.security_level,
                    )
                tx.emit(EventKind.MESSAGE_AUTHENTICATED, message_id=message_id, caller=caller)
        except LedgerError as e:
            audit_log.authentication_rejected(message_id, caller, e.reason.value)
            if isinstance(e, InvalidCredential):
                audit_log.security_event("auth_credential_rejected", severity="high",
                                         message_id=message_id, caller=caller)
            raise

        if escalated_from is not None:
            audit_log.security_escalation(message_id, escalated_from, MAX_SECURITY_LEVEL)
        audit_log.message_authenticated(message_id, caller)
        return True
