"""
Quantum Canary Test Suite

Critical invariants tested:
    AT MOST ONE UPDATE PER INTERVAL
    A REJECTED UPDATE LEAVES THE CANARY UNCHANGED
    THREAT_DETECTED FIRES ONLY ON THE FALSE -> TRUE EDGE
"""

import unittest

from canaryledger import (
    EventKind,
    InvalidCredential,
    InvalidThreatLevel,
    ManualClock,
    MissingCredential,
    RateLimited,
)

from support import DAY, ORACLE_CREDENTIAL, T0, make_system


class TestCanaryUpdate(unittest.TestCase):

    def setUp(self):
        self.clock = ManualClock(T0)
        self.system = make_system(self.clock)

    def _threat_events(self):
        return self.system.queries.events(EventKind.THREAT_DETECTED)

    def test_initial_status(self):
        status = self.system.get_canary_status()

        self.assertEqual(status.last_checked, T0)
        self.assertEqual(status.threat_level, 0)
        self.assertFalse(status.threat_detected)

    def test_update_before_first_interval_rate_limited(self):
        with self.assertRaises(RateLimited) as ctx:
            self.system.update_canary(4, ORACLE_CREDENTIAL)
        self.assertEqual(ctx.exception.retry_after, DAY)

    def test_update_exactly_at_interval_allowed(self):
        self.clock.advance(DAY)
        status = self.system.update_canary(1, ORACLE_CREDENTIAL)
        self.assertEqual(status.last_checked, T0 + DAY)

    def test_threat_detected_on_level_three_or_more(self):
        self.clock.advance(DAY)

        status = self.system.update_canary(3, ORACLE_CREDENTIAL)

        self.assertTrue(status.threat_detected)
        self.assertEqual(status.threat_level, 3)
        events = self._threat_events()
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].payload, {"threat_level": 3, "detected_at": T0 + DAY})

    def test_low_level_emits_nothing(self):
        self.clock.advance(DAY)

        status = self.system.update_canary(2, ORACLE_CREDENTIAL)

        self.assertFalse(status.threat_detected)
        self.assertEqual(len(self.system.state.events), 0)

    def test_event_only_on_rising_edge(self):
        for level in (4, 5, 1, 3):
            self.clock.advance(DAY)
            self.system.update_canary(level, ORACLE_CREDENTIAL)

        events = self._threat_events()

        self.assertEqual([e.payload["threat_level"] for e in events], [4, 3])

    def test_second_update_within_interval_leaves_state_unchanged(self):
        self.clock.advance(DAY)
        first = self.system.update_canary(4, ORACLE_CREDENTIAL)
        self.clock.advance(DAY - 1)

        with self.assertRaises(RateLimited) as ctx:
            self.system.update_canary(1, ORACLE_CREDENTIAL)

        self.assertEqual(ctx.exception.retry_after, 1)
        self.assertEqual(self.system.get_canary_status(), first)

    def test_threat_level_out_of_range(self):
        self.clock.advance(DAY)
        for level in (6, -1, True, 2.5):
            with self.assertRaises(InvalidThreatLevel):
                self.system.update_canary(level, ORACLE_CREDENTIAL)

    def test_empty_credential(self):
        self.clock.advance(DAY)
        with self.assertRaises(MissingCredential):
            self.system.update_canary(4, b"")

    def test_short_credential_rejected_by_placeholder_oracle(self):
        self.clock.advance(DAY)
        with self.assertRaises(InvalidCredential):
            self.system.update_canary(4, b"o" * 63)

    def test_rejected_update_does_not_reset_interval(self):
        self.clock.advance(DAY)
        with self.assertRaises(InvalidCredential):
            self.system.update_canary(4, b"short")

        self.assertEqual(self.system.get_canary_status().last_checked, T0)
        self.assertTrue(self.system.update_canary(4, ORACLE_CREDENTIAL).threat_detected)

    def test_interval_checked_before_threat_level(self):
        with self.assertRaises(RateLimited):
            self.system.update_canary(9, ORACLE_CREDENTIAL)

    def test_seconds_until_next_update(self):
        self.assertEqual(self.system.canary.seconds_until_next_update(), DAY)
        self.clock.advance(DAY - 10)
        self.assertEqual(self.system.canary.seconds_until_next_update(), 10)
        self.clock.advance(10)
        self.assertEqual(self.system.canary.seconds_until_next_update(), 0)

    def test_custom_interval(self):
        system = make_system(self.clock, canary_interval_seconds=60)
        self.clock.advance(60)
        self.assertEqual(system.update_canary(4, ORACLE_CREDENTIAL).threat_level, 4)


if __name__ == "__main__":
    unittest.main()
