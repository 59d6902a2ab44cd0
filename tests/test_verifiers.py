"""
Verifier Test Suite

Tests for the placeholder and Ed25519 credential verifiers, and for a
ledger wired with Ed25519 verification end to end.
"""

import unittest

from canaryledger import (
    Ed25519OracleVerifier,
    Ed25519SignatureVerifier,
    InvalidCredential,
    ManualClock,
    PlaceholderOracleVerifier,
    PlaceholderSignatureVerifier,
    generate_key_pair,
    sign_challenge,
    sign_oracle_report,
)
from canaryledger.hashing import b64e

from support import CREDENTIAL, DAY, HOUR, RECIPIENT, T0, make_system, store


class TestPlaceholderVerifiers(unittest.TestCase):

    def test_oracle_minimum_length(self):
        verifier = PlaceholderOracleVerifier()
        self.assertTrue(verifier.verify(b"x" * 64))
        self.assertFalse(verifier.verify(b"x" * 63))
        self.assertFalse(verifier.verify("x" * 64))

    def test_oracle_configurable_length(self):
        self.assertTrue(PlaceholderOracleVerifier(min_length=8).verify(b"12345678"))

    def test_signature_matches_stored_credential(self):
        verifier = PlaceholderSignatureVerifier()
        self.assertTrue(verifier.verify(1, b"secret", b"secret", RECIPIENT))
        self.assertFalse(verifier.verify(1, b"secreT", b"secret", RECIPIENT))
        self.assertFalse(verifier.verify(1, b"", b"", RECIPIENT))
        self.assertFalse(verifier.verify(1, None, b"secret", RECIPIENT))


class TestEd25519OracleVerifier(unittest.TestCase):

    def setUp(self):
        self.sk, self.pk = generate_key_pair()
        self.verifier = Ed25519OracleVerifier({"oracle-1": self.pk})
        self.report = {"threat_level": 4, "observed_at": T0}

    def test_signed_report_accepted(self):
        self.assertTrue(self.verifier.verify(sign_oracle_report(self.sk, self.report)))

    def test_base64_keys_accepted(self):
        verifier = Ed25519OracleVerifier({"oracle-1": b64e(self.pk)})
        self.assertTrue(verifier.verify(sign_oracle_report(self.sk, self.report)))

    def test_tampered_report_rejected(self):
        credential = bytearray(sign_oracle_report(self.sk, self.report))
        credential[-2] ^= 0x01
        self.assertFalse(self.verifier.verify(bytes(credential)))

    def test_unregistered_oracle_rejected(self):
        other_sk, _ = generate_key_pair()
        self.assertFalse(self.verifier.verify(sign_oracle_report(other_sk, self.report)))

    def test_bare_signature_rejected(self):
        credential = sign_oracle_report(self.sk, self.report)
        self.assertFalse(self.verifier.verify(credential[:64]))


class TestEd25519SignatureVerifier(unittest.TestCase):

    def setUp(self):
        self.sk, self.pk = generate_key_pair()
        self.verifier = Ed25519SignatureVerifier({RECIPIENT: self.pk})

    def test_signed_challenge_accepted(self):
        signature = sign_challenge(self.sk, 1, CREDENTIAL, RECIPIENT)
        self.assertTrue(self.verifier.verify(1, signature, CREDENTIAL, RECIPIENT))

    def test_challenge_bound_to_message_id(self):
        signature = sign_challenge(self.sk, 1, CREDENTIAL, RECIPIENT)
        self.assertFalse(self.verifier.verify(2, signature, CREDENTIAL, RECIPIENT))

    def test_challenge_bound_to_stored_credential(self):
        signature = sign_challenge(self.sk, 1, CREDENTIAL, RECIPIENT)
        self.assertFalse(self.verifier.verify(1, signature, b"other", RECIPIENT))

    def test_unknown_signer_rejected(self):
        signature = sign_challenge(self.sk, 1, CREDENTIAL, "carol")
        self.assertFalse(self.verifier.verify(1, signature, CREDENTIAL, "carol"))

    def test_wrong_length_rejected(self):
        signature = sign_challenge(self.sk, 1, CREDENTIAL, RECIPIENT)
        self.assertFalse(self.verifier.verify(1, signature + b"\x00", CREDENTIAL, RECIPIENT))

    def test_callable_resolver(self):
        verifier = Ed25519SignatureVerifier(lambda signer: self.pk if signer == RECIPIENT else None)
        signature = sign_challenge(self.sk, 7, CREDENTIAL, RECIPIENT)
        self.assertTrue(verifier.verify(7, signature, CREDENTIAL, RECIPIENT))


class TestEd25519Ledger(unittest.TestCase):
    """Ledger and canary wired with Ed25519 verification."""

    def setUp(self):
        self.clock = ManualClock(T0)
        self.oracle_sk, oracle_pk = generate_key_pair()
        self.bob_sk, bob_pk = generate_key_pair()
        self.system = make_system(
            self.clock,
            oracle_verifier=Ed25519OracleVerifier({"oracle-1": oracle_pk}),
            signature_verifier=Ed25519SignatureVerifier({RECIPIENT: bob_pk}),
        )

    def test_signed_authentication(self):
        message_id = store(self.system, unlock_in=HOUR)
        self.clock.advance(HOUR)

        signature = sign_challenge(self.bob_sk, message_id, CREDENTIAL, RECIPIENT)

        self.assertTrue(self.system.authenticate_message(RECIPIENT, message_id, signature))

    def test_signature_from_wrong_key_rejected(self):
        message_id = store(self.system, unlock_in=HOUR)
        self.clock.advance(HOUR)
        forged_sk, _ = generate_key_pair()

        signature = sign_challenge(forged_sk, message_id, CREDENTIAL, RECIPIENT)

        with self.assertRaises(InvalidCredential):
            self.system.authenticate_message(RECIPIENT, message_id, signature)

    def test_signed_threat_report(self):
        self.clock.advance(DAY)
        credential = sign_oracle_report(self.oracle_sk, {"threat_level": 5})

        status = self.system.update_canary(5, credential)

        self.assertTrue(status.threat_detected)

    def test_report_contents_not_bound_to_threat_level(self):
        self.clock.advance(DAY)
        credential = sign_oracle_report(self.oracle_sk, {"threat_level": 5})
        self.system.update_canary(5, credential)

        self.clock.advance(DAY)
        status = self.system.update_canary(0, credential)

        self.assertFalse(status.threat_detected)
        self.assertEqual(status.threat_level, 0)

    def test_unsigned_threat_report_rejected(self):
        self.clock.advance(DAY)
        with self.assertRaises(InvalidCredential):
            self.system.update_canary(5, b"o" * 128)


if __name__ == "__main__":
    unittest.main()
