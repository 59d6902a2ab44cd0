"""
Credential verifiers for the canary ledger.

The ledger and canary never hard-code a verification scheme. They are handed
an OracleVerifier and a SignatureVerifier at construction time, so a real
post-quantum scheme can replace the implementations here without touching
ledger logic.

Implementations:
    PlaceholderOracleVerifier / PlaceholderSignatureVerifier
        NOT CRYPTOGRAPHIC. Length and equality checks only. Suitable for
        development and tests; rejected by validate_config() in prod.
    Ed25519OracleVerifier / Ed25519SignatureVerifier
        Ed25519 (RFC 8032) via PyNaCl, against registered public keys.

Verifiers are pure predicates: they never raise on malformed input and never
mutate state.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Mapping, Optional, Union

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import SigningKey, VerifyKey

from .hashing import b64d, canonicalize, constant_time_compare, sha256_hex

ED25519_SIGNATURE_SIZE = 64

KeyResolver = Callable[[str], Optional[bytes]]


class OracleVerifier(ABC):
    """Validates the credential accompanying a threat report."""

    @abstractmethod
    def verify(self, credential: bytes) -> bool:
        pass


class SignatureVerifier(ABC):
    """Validates an authentication credential for a stored message."""

    @abstractmethod
    def verify(
        self,
        message_id: int,
        auth_credential: bytes,
        stored_credential: bytes,
        signer: str
    ) -> bool:
        pass


# ============================================================
# Placeholder implementations (non-cryptographic)
# ============================================================

class PlaceholderOracleVerifier(OracleVerifier):
    """
    Accepts any credential of at least min_length bytes.

    WARNING: This is NOT cryptographic verification. Anyone can produce an
    accepted credential. Use Ed25519OracleVerifier or a post-quantum
    implementation in production.
    """

    def __init__(self, min_length: int = ED25519_SIGNATURE_SIZE):
        self.min_length = min_length

    def verify(self, credential: bytes) -> bool:
        return isinstance(credential, (bytes, bytearray)) and len(credential) >= self.min_length


class PlaceholderSignatureVerifier(SignatureVerifier):
    """
    Accepts an auth credential equal to the stored credential.

    WARNING: This is NOT cryptographic verification. It treats the stored
    credential as a shared secret and provides no guarantee beyond that.
    """

    def __init__(self, min_length: int = 1):
        self.min_length = min_length

    def verify(
        self,
        message_id: int,
        auth_credential: bytes,
        stored_credential: bytes,
        signer: str
    ) -> bool:
        if not isinstance(auth_credential, (bytes, bytearray)):
            return False
        if len(auth_credential) < self.min_length:
            return False
        return constant_time_compare(bytes(auth_credential), bytes(stored_credential))


# ============================================================
# Ed25519 implementations (PyNaCl)
# ============================================================

def _verify_detached(verify_key: bytes, message: bytes, signature: bytes) -> bool:
    try:
        VerifyKey(verify_key).verify(message, signature)
        return True
    except (BadSignatureError, CryptoError, ValueError, TypeError):
        return False


class Ed25519OracleVerifier(OracleVerifier):
    """
    Verifies signed threat reports from registered oracles.

    A credential is ``signature (64 bytes) || report``; it is accepted when
    the signature over the report verifies under any registered oracle key.

    The report is opaque to this check. Nothing ties it to the threat level
    passed to update(), so a captured credential can be replayed with a
    different level once the canary interval has elapsed.
    """

    def __init__(self, oracle_keys: Mapping[str, Union[bytes, str]]):
        """
        Args:
            oracle_keys: kid -> Ed25519 public key (raw bytes or base64)
        """
        self._keys: Dict[str, bytes] = {
            kid: key if isinstance(key, bytes) else b64d(key)
            for kid, key in oracle_keys.items()
        }

    def verify(self, credential: bytes) -> bool:
        if not isinstance(credential, (bytes, bytearray)):
            return False
        if len(credential) <= ED25519_SIGNATURE_SIZE:
            return False
        signature = bytes(credential[:ED25519_SIGNATURE_SIZE])
        report = bytes(credential[ED25519_SIGNATURE_SIZE:])
        return any(_verify_detached(key, report, signature) for key in self._keys.values())


def signature_challenge(message_id: int, stored_credential: bytes, signer: str) -> bytes:
    """Canonical bytes a recipient signs to authenticate a message."""
    return canonicalize({
        "message_id": message_id,
        "credential_hash": sha256_hex(stored_credential),
        "signer": signer,
    })


class Ed25519SignatureVerifier(SignatureVerifier):
    """
    Verifies a detached Ed25519 signature over signature_challenge().

    The signer's public key is looked up through key_resolver; unknown
    signers are rejected.
    """

    def __init__(self, key_resolver: Union[KeyResolver, Mapping[str, Union[bytes, str]]]):
        if callable(key_resolver):
            self._resolve = key_resolver
        else:
            keys = {
                identity: key if isinstance(key, bytes) else b64d(key)
                for identity, key in key_resolver.items()
            }
            self._resolve = keys.get

    def verify(
        self,
        message_id: int,
        auth_credential: bytes,
        stored_credential: bytes,
        signer: str
    ) -> bool:
        if not isinstance(auth_credential, (bytes, bytearray)):
            return False
        if len(auth_credential) != ED25519_SIGNATURE_SIZE:
            return False
        verify_key = self._resolve(signer)
        if not verify_key:
            return False
        challenge = signature_challenge(message_id, stored_credential, signer)
        return _verify_detached(verify_key, challenge, bytes(auth_credential))


# ============================================================
# Signing helpers (client side, tooling, tests)
# ============================================================

def sign_oracle_report(signing_key: bytes, report: dict) -> bytes:
    """Produce an Ed25519OracleVerifier credential for a report dict."""
    body = canonicalize(report)
    return SigningKey(signing_key).sign(body).signature + body


def sign_challenge(signing_key: bytes, message_id: int, stored_credential: bytes, signer: str) -> bytes:
    """Produce an Ed25519SignatureVerifier auth credential."""
    challenge = signature_challenge(message_id, stored_credential, signer)
    return SigningKey(signing_key).sign(challenge).signature


def generate_key_pair() -> tuple:
    """Generate an Ed25519 key pair as (signing_key_bytes, verify_key_bytes)."""
    sk = SigningKey.generate()
    return bytes(sk), bytes(sk.verify_key)
