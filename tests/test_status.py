"""Tests for status codes and the status exceptions."""
from ExpenseSync.status import status
from ExpenseSync.ui.actions import signals
from tests.base import BaseTestCase


class StatusTests(BaseTestCase):

    def test_every_status_has_a_message(self):
        for s in status.Status:
            self.assertIn(s, status.STATUS_MESSAGE)
            self.assertTrue(status.get_message(s))

    def test_exception_carries_status(self):
        ex = status.SyncFailedException()
        self.assertEqual(ex.status, status.Status.SyncFailed)
        self.assertEqual(str(ex), status.get_message(status.Status.SyncFailed))

    def test_exception_message(self):
        ex = status.ExpenseNotFoundException('id "abc"')
        self.assertTrue(str(ex).endswith('id "abc"'))
        self.assertTrue(str(ex).startswith(ex.status_message))

    def test_exception_emits_error_signal(self):
        received = []

        def _slot(message: str) -> None:
            received.append(message)

        signals.error.connect(_slot)
        try:
            status.StorageUnavailableException('disk full')
        finally:
            signals.error.disconnect(_slot)
        self.assertEqual(received, ['disk full'])

    def test_invalid_config_errors(self):
        ex = status.SyncConfigInvalidException({'repo': 'Repository is required'})
        self.assertEqual(ex.errors, {'repo': 'Repository is required'})
        self.assertIn('repo: Repository is required', str(ex))

    def test_every_exception_has_its_own_status(self):
        exceptions = [
            cls for cls in vars(status).values()
            if isinstance(cls, type) and issubclass(cls, status.BaseStatusException)
            and cls is not status.BaseStatusException
        ]
        self.assertTrue(exceptions)
        statuses = [cls.status for cls in exceptions]
        self.assertNotIn(status.Status.UnknownStatus, statuses)
        self.assertEqual(len(statuses), len(set(statuses)))
        for s in statuses:
            self.assertIn(s, status.STATUS_MESSAGE)
