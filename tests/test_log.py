# tests/test_log.py
"""
Tests for ExpenseSync.log.log
(covers TankHandler, the Qt bridge and the setup helpers).

Run:
    python -m unittest tests.test_log
"""
import logging
from typing import List

from PySide6.QtCore import QtMsgType

from ExpenseSync.log.log import (
    TankHandler,
    get_tank,
    qt_message_handler,
    set_logging_level,
    setup_logging,
)
from ExpenseSync.ui.actions import signals
from tests.base import BaseTestCase


class LogModuleTests(BaseTestCase):
    """
    Each test starts with a fresh root logger configured by
    setup_logging(enable_stream_handler=False).
    """

    def setUp(self) -> None:
        super().setUp()

        # enable logging
        logging.disable(logging.NOTSET)

        setup_logging(enable_stream_handler=False,
                      enable_qt_handler=False,
                      log_level=logging.DEBUG)

        self.root_logger = logging.getLogger()
        self.tank: TankHandler = get_tank()

    def tearDown(self) -> None:
        setup_logging(enable_stream_handler=False, enable_qt_handler=False)
        super().tearDown()

    def test_tank_is_bounded(self):
        tank = TankHandler(capacity=5)
        for i in range(8):
            tank.emit(logging.LogRecord('test', logging.INFO, __file__, 0, f'msg-{i}', None, None))

        logs = tank.get_logs()
        self.assertEqual(len(logs), 5)
        self.assertIn('msg-3', logs[0])
        self.assertIn('msg-7', logs[-1])

    def test_tank_handles_very_long_message(self):
        """
        A very long error message is stored intact and still raises the showLogs signal.
        """
        long_msg = "X" * 100_000
        triggered: list[bool] = []

        def _slot() -> None:
            triggered.append(True)

        signals.showLogs.connect(_slot)
        try:
            logging.error(long_msg)
        finally:
            signals.showLogs.disconnect(_slot)

        self.assertTrue(triggered, "showLogs not emitted for long ERROR message")
        stored = self.tank.get_logs(logging.ERROR)[-1]
        self.assertIn(long_msg[-50:], stored[-60:], "Long message truncated in TankHandler")

    def test_set_logging_level_accepts_valid_levels(self):
        set_logging_level(logging.ERROR)
        self.assertEqual(self.root_logger.level, logging.ERROR)
        for h in self.root_logger.handlers:
            self.assertEqual(h.level, logging.ERROR)

    def test_set_logging_level_rejects_non_int(self):
        with self.assertRaises(ValueError):
            set_logging_level("INFO")  # type: ignore[arg-type]

    def test_set_logging_level_rejects_unknown(self):
        with self.assertRaises(ValueError):
            set_logging_level(1234)

    def test_tank_handler_stores_and_filters(self):
        logging.debug("dbg message")
        logging.error("err message")
        self.assertEqual(len(self.tank.tank), 2)
        errs: List[str] = self.tank.get_logs(logging.ERROR)
        self.assertEqual(len(errs), 1)
        self.assertIn("err message", errs[0])
        self.tank.clear_logs()
        self.assertEqual(len(self.tank.tank), 0)

    def test_sync_failures_reach_the_tank(self):
        from ExpenseSync.status import status
        status.SyncFailedException('remote rejected')
        errs = self.tank.get_logs(logging.ERROR)
        self.assertTrue(any('remote rejected' in m for m in errs))

    def test_qt_message_handler_maps_to_logging(self):
        qt_message_handler(QtMsgType.QtInfoMsg, None, "Qt info")
        qt_message_handler(QtMsgType.QtWarningMsg, None, "Qt warn")
        msgs = self.tank.get_logs()
        self.assertTrue(any("Qt info" in m for m in msgs))
        self.assertTrue(any("Qt warn" in m for m in msgs))

    def test_qt_message_handler_fatal_exits(self):
        with self.assertRaises(SystemExit):
            qt_message_handler(QtMsgType.QtFatalMsg, None, "fatal")

    def test_setup_logging_installs_tank_handler_only(self):
        self.assertEqual(
            [type(h) for h in self.root_logger.handlers],
            [TankHandler],
        )

    def test_sync_logs_are_filtered_by_module(self):
        from ExpenseSync.core import machine
        logging.info('unrelated message')
        record = logging.LogRecord('test', logging.WARNING, machine.__file__, 0, 'run stalled', None, None)
        self.tank.emit(record)

        sync_logs = self.tank.get_sync_logs()
        self.assertEqual(len(sync_logs), 1)
        self.assertIn('run stalled', sync_logs[0])
        self.assertIn('<machine:', sync_logs[0])
        unrelated = self.tank.get_logs(modules=['test_log'])
        self.assertEqual(len(unrelated), 1)
        self.assertIn('unrelated message', unrelated[0])
