"""Shared fixtures for the canary ledger test suite."""

import hashlib

from canaryledger import (
    ManualClock,
    PlaceholderOracleVerifier,
    PlaceholderSignatureVerifier,
    create_system,
)

T0 = 1_700_000_000
HOUR = 3600
DAY = 86400

SENDER = "alice"
RECIPIENT = "bob"
MALLORY = "mallory"

FINGERPRINT = hashlib.sha256(b"meet at the usual place").digest()
CREDENTIAL = b"bob-shared-secret"
ORACLE_CREDENTIAL = b"o" * 64


def make_system(clock=None, backend=None, oracle_verifier=None, signature_verifier=None, **kwargs):
    return create_system(
        oracle_verifier or PlaceholderOracleVerifier(),
        signature_verifier or PlaceholderSignatureVerifier(),
        clock=clock or ManualClock(T0),
        backend=backend,
        **kwargs
    )


def store(system, unlock_in=HOUR, level=2, sender=SENDER, recipient=RECIPIENT,
          fingerprint=FINGERPRINT, credential=CREDENTIAL):
    """Store a message unlocking unlock_in seconds from the system clock."""
    unlock_time = system.state.clock.now() + unlock_in
    return system.store_message(sender, fingerprint, credential, recipient, unlock_time, level)


def raise_threat(system, clock, level=4):
    """Advance past the canary interval and report a threat."""
    clock.advance(DAY)
    return system.update_canary(level, ORACLE_CREDENTIAL)
