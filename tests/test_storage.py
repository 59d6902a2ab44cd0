"""
Storage Backend Test Suite

Critical invariants tested:
    A COMMIT FAILURE LEAVES MEMORY AND DISK UNCHANGED
    RELOADED STATE IS IDENTICAL, INCLUDING THE EVENT CHAIN
"""

import os
import tempfile
import unittest

from canaryledger import InMemoryBackend, ManualClock, SqliteBackend, StorageError
from canaryledger.state import Transaction

from support import CREDENTIAL, DAY, HOUR, RECIPIENT, SENDER, T0, make_system, raise_threat, store


class FailingBackend(InMemoryBackend):
    """In-memory backend whose commits can be made to fail."""

    def __init__(self):
        self.fail = False

    def commit(self, tx):
        if self.fail:
            raise StorageError("disk full")


class TestCommitFailure(unittest.TestCase):

    def setUp(self):
        self.clock = ManualClock(T0)
        self.backend = FailingBackend()
        self.system = make_system(self.clock, backend=self.backend)

    def test_failed_commit_allocates_no_id(self):
        self.backend.fail = True
        with self.assertRaises(StorageError):
            store(self.system)

        self.backend.fail = False
        self.assertEqual(store(self.system), 1)
        self.assertEqual(self.system.get_sender_count(SENDER), 1)
        self.assertEqual(len(self.system.state.events), 1)

    def test_failed_commit_leaves_canary_unchanged(self):
        self.clock.advance(DAY)
        self.backend.fail = True
        with self.assertRaises(StorageError):
            self.system.update_canary(4, b"o" * 64)

        status = self.system.get_canary_status()
        self.assertFalse(status.threat_detected)
        self.assertEqual(status.last_checked, T0)


class TestSqliteBackend(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "ledger.db")
        self.clock = ManualClock(T0)

    def tearDown(self):
        self._tmp.cleanup()

    def _open(self):
        return make_system(self.clock, backend=SqliteBackend(self.path))

    def test_state_survives_reopen(self):
        system = self._open()
        first = store(system, unlock_in=HOUR, level=2)
        store(system, unlock_in=2 * DAY, level=4, sender="carol")
        raise_threat(system, self.clock)
        system.authenticate_message(RECIPIENT, first, CREDENTIAL)

        messages = system.state.messages()
        canary = system.get_canary_status()
        events = system.queries.export_events()
        system.close()

        reopened = self._open()

        self.assertEqual(reopened.state.messages(), messages)
        self.assertEqual(reopened.get_canary_status(), canary)
        self.assertEqual(reopened.queries.export_events(), events)
        self.assertEqual(reopened.get_sender_count(SENDER), 1)
        self.assertEqual(reopened.get_sender_count("carol"), 1)
        self.assertTrue(reopened.queries.verify_event_chain().valid)
        reopened.close()

    def test_escalation_persisted(self):
        system = self._open()
        message_id = store(system, unlock_in=HOUR, level=1)
        raise_threat(system, self.clock)
        system.authenticate_message(RECIPIENT, message_id, CREDENTIAL)
        system.close()

        reopened = self._open()
        message = reopened.get_message(message_id)

        self.assertEqual(message.security_level, 5)
        self.assertTrue(message.quantum_secure)
        self.assertEqual(message.requested_level, 1)
        reopened.close()

    def test_unstorable_integer_raises_storage_error(self):
        backend = SqliteBackend(self.path)
        tx = Transaction(T0, 1, (0, None))
        tx.put_sender_count(SENDER, 2 ** 63)

        with self.assertRaises(StorageError):
            backend.commit(tx)

        self.assertEqual(backend.load().sender_counts, {})
        backend.close()

    def test_ids_continue_after_reopen(self):
        system = self._open()
        store(system)
        store(system)
        system.close()

        reopened = self._open()
        self.assertEqual(store(reopened), 3)
        self.assertEqual(reopened.queries.events()[-1].seq, 3)
        reopened.close()

    def test_initial_canary_kept_across_restart(self):
        system = self._open()
        system.close()
        self.clock.advance(HOUR)

        reopened = self._open()

        self.assertEqual(reopened.get_canary_status().last_checked, T0)
        reopened.close()

    def test_interval_enforced_across_restart(self):
        system = self._open()
        raise_threat(system, self.clock)
        system.close()

        reopened = self._open()
        self.assertEqual(reopened.canary.seconds_until_next_update(), DAY)
        reopened.close()

    def test_stats(self):
        system = self._open()
        store(system)

        stats = system.state.backend.stats()

        self.assertEqual(stats["messages_count"], 1)
        self.assertEqual(stats["sender_counts_count"], 1)
        self.assertEqual(stats["event_log_count"], 1)
        system.close()


if __name__ == "__main__":
    unittest.main()
