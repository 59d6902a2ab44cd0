"""
System assembly and the caller-facing operation set.

LedgerSystem wires one LedgerState to the canary, the ledger and the query
service, and exposes the boundary operations with the caller identity as an
explicit argument. build_system() assembles one from config.py settings.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from . import config
from .canary import QuantumCanary
from .clock import Clock, SystemClock
from .errors import ConfigurationError
from .events import LedgerEvent
from .ledger import MessageLedger
from .models import CanaryStatus, Message
from .queries import QueryService
from .state import LedgerState
from .storage import InMemoryBackend, LedgerBackend, SqliteBackend
from .verifiers import (
    Ed25519OracleVerifier,
    Ed25519SignatureVerifier,
    OracleVerifier,
    PlaceholderOracleVerifier,
    PlaceholderSignatureVerifier,
    SignatureVerifier,
)

logger = logging.getLogger(__name__)


@dataclass
class LedgerSystem:
    state: LedgerState
    canary: QuantumCanary
    ledger: MessageLedger
    queries: QueryService

    def store_message(
        self,
        sender: str,
        fingerprint: bytes,
        credential: bytes,
        recipient: str,
        unlock_time: int,
        security_level: int
    ) -> int:
        return self.ledger.store(sender, fingerprint, credential, recipient, unlock_time, security_level)

    def authenticate_message(self, caller: str, message_id: int, auth_credential: bytes) -> bool:
        return self.ledger.authenticate(message_id, auth_credential, caller)

    def update_canary(self, threat_level: int, oracle_credential: bytes) -> CanaryStatus:
        return self.canary.update(threat_level, oracle_credential)

    def get_message(self, message_id: int) -> Message:
        return self.queries.get_message(message_id)

    def get_canary_status(self) -> CanaryStatus:
        return self.queries.get_canary_status()

    def get_sender_count(self, identity: str) -> int:
        return self.queries.get_sender_count(identity)

    def subscribe(self, callback: Callable[[LedgerEvent], None]) -> Callable[[], None]:
        """Receive committed events in commit order; returns an unsubscribe function."""
        return self.state.events.subscribe(callback)

    def close(self) -> None:
        self.state.backend.close()


def create_system(
    oracle_verifier: OracleVerifier,
    signature_verifier: SignatureVerifier,
    clock: Optional[Clock] = None,
    backend: Optional[LedgerBackend] = None,
    canary_interval_seconds: Optional[int] = None,
    start_time: Optional[int] = None
) -> LedgerSystem:
    """Wire a LedgerSystem from explicit collaborators."""
    state = LedgerState(clock or SystemClock(), backend or InMemoryBackend(), start_time=start_time)
    canary = QuantumCanary(state, oracle_verifier, canary_interval_seconds)
    ledger = MessageLedger(state, canary, signature_verifier)
    return LedgerSystem(state=state, canary=canary, ledger=ledger, queries=QueryService(state))


def get_backend() -> LedgerBackend:
    if config.LEDGER_BACKEND == "sqlite":
        return SqliteBackend(config.LEDGER_DB_PATH)
    return InMemoryBackend()


def get_verifiers() -> tuple:
    """Return (oracle_verifier, signature_verifier) for the configured scheme."""
    if config.VERIFIER_TYPE == "ed25519":
        return (
            Ed25519OracleVerifier(config.load_key_map(config.ORACLE_PUBLIC_KEYS_PATH)),
            Ed25519SignatureVerifier(config.load_key_map(config.SIGNER_KEYS_PATH)),
        )
    if config.VERIFIER_TYPE == "placeholder":
        logger.warning("Using placeholder verifiers: credential checks are NOT cryptographic")
        return (
            PlaceholderOracleVerifier(config.ORACLE_MIN_CREDENTIAL_LENGTH),
            PlaceholderSignatureVerifier(config.SIGNATURE_MIN_CREDENTIAL_LENGTH),
        )
    raise ConfigurationError(f"Unknown verifier type: {config.VERIFIER_TYPE}")


def build_system(clock: Optional[Clock] = None) -> LedgerSystem:
    """Assemble a LedgerSystem from environment configuration."""
    config.require_valid_config()
    oracle_verifier, signature_verifier = get_verifiers()
    system = create_system(
        oracle_verifier,
        signature_verifier,
        clock=clock,
        backend=get_backend(),
        canary_interval_seconds=config.CANARY_INTERVAL_SECONDS,
    )
    logger.info(
        "Ledger system ready: env=%s backend=%s verifier=%s messages=%d",
        config.ENV, config.LEDGER_BACKEND, config.VERIFIER_TYPE, system.state.message_count()
    )
    return system
