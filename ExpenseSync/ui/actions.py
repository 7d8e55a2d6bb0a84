"""Application-wide Qt signals for ExpenseSync.

This module provides:
    - Signals: custom Qt signals for sync requests, errors and the log viewer.
    - signals: the shared instance every store and view connects to.
"""
import logging

from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for sync, error and logging events."""
    syncRequested = QtCore.Signal()
    syncConfigurationRequested = QtCore.Signal()

    showLogs = QtCore.Signal()

    error = QtCore.Signal(str)

    def __init__(self):
        super().__init__()
        self._connect_signals()

    def _connect_signals(self):
        self.error.connect(lambda msg: logging.debug(f'Error signal: {msg}'))
        self.syncRequested.connect(lambda: logging.debug('Sync requested'))


signals = Signals()
