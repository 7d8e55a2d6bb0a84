"""Tests for the sync notification emitter."""
import logging
import unittest

from ExpenseSync.core.emitter import SyncNotificationEmitter, SyncOutcome


class SyncOutcomeTests(unittest.TestCase):

    def test_has_changes(self):
        self.assertFalse(SyncOutcome().has_changes)
        self.assertTrue(SyncOutcome(local_files_updated=1).has_changes)
        self.assertTrue(SyncOutcome(remote_files_updated=1).has_changes)

    def test_counts_must_be_non_negative(self):
        with self.assertRaises(ValueError):
            SyncOutcome(local_files_updated=-1)
        with self.assertRaises(ValueError):
            SyncOutcome(remote_files_updated='2')


class EmitterTests(unittest.TestCase):

    def setUp(self) -> None:
        self.emitter = SyncNotificationEmitter()
        self.outcome = SyncOutcome(local_files_updated=1, remote_files_updated=2, message='Synced')

    def test_delivery_in_registration_order(self):
        received = []
        self.emitter.subscribe(lambda o: received.append(('a', o)))
        self.emitter.subscribe(lambda o: received.append(('b', o)))

        self.emitter.publish(self.outcome)
        self.assertEqual(received, [('a', self.outcome), ('b', self.outcome)])

    def test_unsubscribe_is_idempotent(self):
        received = []
        unsubscribe = self.emitter.subscribe(received.append)
        unsubscribe()
        unsubscribe()

        self.emitter.publish(self.outcome)
        self.assertEqual(received, [])
        self.assertEqual(len(self.emitter), 0)

    def test_unsubscribe_only_removes_own_registration(self):
        received = []
        first = self.emitter.subscribe(received.append)
        self.emitter.subscribe(received.append)

        first()
        first()
        self.emitter.publish(self.outcome)
        self.assertEqual(received, [self.outcome])

    def test_no_replay_for_late_subscribers(self):
        self.emitter.publish(self.outcome)
        received = []
        self.emitter.subscribe(received.append)
        self.assertEqual(received, [])

    def test_publish_without_listeners(self):
        self.emitter.publish(self.outcome)

    def test_failing_listener_does_not_block_others(self):
        received = []

        def broken(outcome):
            raise RuntimeError('listener failed')

        self.emitter.subscribe(broken)
        self.emitter.subscribe(received.append)

        with self.assertLogs(level=logging.ERROR):
            self.emitter.publish(self.outcome)
        self.assertEqual(received, [self.outcome])

    def test_subscribe_during_publish(self):
        late = []
        received = []

        def subscribe_more(outcome):
            received.append(outcome)
            self.emitter.subscribe(late.append)

        self.emitter.subscribe(subscribe_more)
        self.emitter.publish(self.outcome)
        self.assertEqual(late, [])

        self.emitter.publish(self.outcome)
        self.assertEqual(late, [self.outcome])

    def test_listener_must_be_callable(self):
        with self.assertRaises(TypeError):
            self.emitter.subscribe('not callable')

    def test_clear(self):
        received = []
        self.emitter.subscribe(received.append)
        self.emitter.clear()
        self.emitter.publish(self.outcome)
        self.assertEqual(received, [])
