"""
Quantum canary: the process-wide threat signal.

An oracle periodically reports a threat level in [0, 5]. A level of 3 or
more puts the system in threat mode: new messages are stored at the ceiling
security level and existing ones are escalated as they are authenticated.

Updates are rate-limited to one per interval (24 hours by default) so a
single coerced or faulty oracle cannot spam escalations. THREAT_DETECTED is
emitted only on the false -> true edge of the threat flag.
"""

from typing import Optional

from . import gates
from .config import CANARY_INTERVAL_SECONDS
from .errors import InvalidCredential, LedgerError, RateLimited
from .events import EventKind
from .logging_config import audit_log
from .models import THREAT_THRESHOLD, CanaryStatus
from .state import LedgerState
from .verifiers import OracleVerifier


class QuantumCanary:
    """
    Threat-level tracker writable only through update().

    Usage:
        canary = QuantumCanary(state, oracle_verifier)
        canary.update(4, oracle_credential)
        if canary.status().threat_detected:
            ...
    """

    def __init__(
        self,
        state: LedgerState,
        oracle_verifier: OracleVerifier,
        interval_seconds: Optional[int] = None
    ):
        self._state = state
        self._verifier = oracle_verifier
        self.interval_seconds = CANARY_INTERVAL_SECONDS if interval_seconds is None else interval_seconds

    def update(self, threat_level: int, oracle_credential: bytes) -> CanaryStatus:
        """
        Record a new oracle threat report.

        Args:
            threat_level: Reported level, 0..5
            oracle_credential: Opaque proof validated by the OracleVerifier

        Returns:
            The new canary status

        Raises:
            RateLimited: interval since last_checked has not elapsed
            InvalidThreatLevel: level outside 0..5
            MissingCredential: empty credential
            InvalidCredential: OracleVerifier rejected the credential
        """
        try:
            with self._state.transaction() as tx:
                previous = self._state.canary
                gates.enforce(
                    gates.gate_canary_interval(previous, tx.now, self.interval_seconds),
                    gates.gate_threat_level(threat_level),
                    gates.gate_credential_present(oracle_credential, "oracle_credential"),
                )
                gates.enforce(gates.gate_oracle(self._verifier, oracle_credential))

                status = CanaryStatus(
                    last_checked=tx.now,
                    threat_level=threat_level,
                    threat_detected=threat_level >= THREAT_THRESHOLD,
                )
                tx.put_canary(status)
                if status.threat_detected and not previous.threat_detected:
                    tx.emit(EventKind.THREAT_DETECTED, threat_level=threat_level, detected_at=tx.now)
        except LedgerError as e:
            audit_log.canary_update_rejected(e.reason.value, getattr(e, "retry_after", None))
            if isinstance(e, InvalidCredential):
                audit_log.security_event("oracle_credential_rejected", severity="high",
                                         threat_level=threat_level)
            raise

        audit_log.canary_updated(status.threat_level, status.threat_detected, status.last_checked)
        if status.threat_detected and not previous.threat_detected:
            audit_log.threat_detected(status.threat_level, status.last_checked)
        return status

    def status(self) -> CanaryStatus:
        """Read-only snapshot of the canary."""
        return self._state.canary

    @property
    def threat_detected(self) -> bool:
        return self._state.canary.threat_detected

    def seconds_until_next_update(self) -> int:
        """Seconds before update() stops failing with RateLimited (0 if allowed now)."""
        blocked = gates.gate_canary_interval(self.status(), self._state.clock.now(), self.interval_seconds)
        return blocked.retry_after if isinstance(blocked, RateLimited) else 0
