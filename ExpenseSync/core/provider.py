"""Composition root.

:class:`StoreProvider` builds the one instance of every store and of the sync
machine, and wires them together:

- sync outcomes published on the emitter become success notifications,
- a failed sync becomes an error notification,
- a successful sync applies the downloaded ledger and settings, and lowers
  the pending counters it covered,
- the pending count is recomputed whenever its inputs change,
- auto-sync runs at launch or after expense edits, depending on the settings.

Views only read the stores and call the trigger methods. :func:`get_provider`
creates the shared provider on first access; :func:`dispose_provider` tears it
down at application exit.
"""
import logging
import threading
from typing import Optional

from PySide6 import QtCore

from . import autosync
from . import effects
from .emitter import SyncNotificationEmitter, SyncOutcome
from .expenses import ExpenseStore
from .machine import SUCCESS_DISPLAY_MS, SyncMachine, SyncRequest, Transport
from .notifications import NotificationExpiry, NotificationStore, NotificationType
from .pending import PendingChanges, count, sync_button_text
from ..settings import storage as storage_lib
from ..settings.lib import AutoSyncTiming, ConfigPaths, SettingsStore
from ..settings.ui_state import UIStateStore
from ..status import status
from ..ui.actions import signals

SYNC_NOTIFICATION_DURATION: int = 4000

_provider: Optional['StoreProvider'] = None
_provider_lock = threading.Lock()


def no_transport(request: SyncRequest) -> SyncOutcome:
    """Transport used when the application did not install one."""
    raise status.SyncFailedException('No sync transport is installed.')


def format_sync_message(outcome: SyncOutcome) -> str:
    """Notification text for a sync that changed files."""
    message = outcome.message or 'Sync complete'
    return (
        f'{message}: {outcome.local_files_updated} local files updated, '
        f'{outcome.remote_files_updated} remote files updated'
    )


class StoreProvider(QtCore.QObject):
    """Owner of the shared stores and the sync machine.

    Signals:
        pendingCountChanged (int): Emitted with the new badge count.
    """
    pendingCountChanged = QtCore.Signal(int)

    def __init__(self, transport: Optional[Transport] = None,
                 storage: Optional[storage_lib.Storage] = None,
                 success_display_ms: int = SUCCESS_DISPLAY_MS,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)

        if storage is None:
            storage = storage_lib.QSettingsStorage(ConfigPaths().storage_path)
        self.storage = storage

        self.settings = SettingsStore(storage, parent=self)
        self.ui_state = UIStateStore(storage, parent=self)
        self.expenses = ExpenseStore(storage, parent=self)
        self.notifications = NotificationStore(parent=self)
        self.emitter = SyncNotificationEmitter()
        self.machine = SyncMachine(
            transport or no_transport,
            self.emitter,
            success_display_ms=success_display_ms,
            parent=self,
        )

        self.notification_expiry: Optional[NotificationExpiry] = None
        self._unsubscribe = None
        self._covered: Optional[PendingChanges] = None
        self._covered_settings: bool = False
        self._last_count: Optional[int] = None
        self._initialized: bool = False
        self._disposed: bool = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def pending_count(self) -> int:
        return count(self.expenses.pending_changes, self.settings.sync_flags)

    @property
    def sync_button_text(self) -> str:
        return sync_button_text(self.machine.snapshot.is_syncing, self.pending_count)

    def init(self, skip_initialization: bool = False) -> None:
        """Connect the stores and load persisted state. Calling it again does nothing.

        Args:
            skip_initialization: Wire everything but do not read storage or auto-sync.
        """
        if self._initialized or self._disposed:
            return
        self._initialized = True
        logging.debug('Initializing store provider.')

        self._unsubscribe = self.emitter.subscribe(self._on_sync_notification)
        self.machine.syncSucceeded.connect(self._on_sync_succeeded)
        self.machine.syncFailed.connect(self._on_sync_failed)
        self.machine.stateChanged.connect(self._emit_pending_count)

        self.expenses.pendingChangesChanged.connect(self._emit_pending_count)
        self.expenses.expenseMutated.connect(self._on_expense_mutated)
        self.settings.unsyncedChangesChanged.connect(self._emit_pending_count)
        self.settings.settingsChanged.connect(self._emit_pending_count)

        signals.syncRequested.connect(self.request_sync)

        self.notification_expiry = NotificationExpiry(self.notifications, parent=self)

        if skip_initialization:
            return

        self.settings.initialize()
        self.ui_state.initialize()
        self.expenses.initialize()

        if autosync.should_auto_sync(self.settings.settings, self.settings.sync_config, AutoSyncTiming.OnLaunch):
            logging.info('Running auto-sync on launch.')
            self.request_sync()

    def dispose(self) -> None:
        """Stop the sync machine, cancel notification timers and flush pending writes."""
        if self._disposed:
            return
        self._disposed = True
        logging.debug('Disposing store provider.')

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        if self._initialized:
            try:
                signals.syncRequested.disconnect(self.request_sync)
            except (RuntimeError, TypeError):
                logging.debug('Sync request signal was already disconnected.')

        if self.notification_expiry is not None:
            self.notification_expiry.dispose()

        self.machine.stop()

        if not effects.wait_for_effects():
            logging.warning('Timed out waiting for pending storage writes.')

    @QtCore.Slot()
    def request_sync(self) -> bool:
        """Start a sync with the stored configuration.

        The transport receives the configuration together with a snapshot of the
        local ledger, and of the settings when settings sync is enabled.

        Returns:
            bool: True if the machine accepted the request.
        """
        if self._disposed:
            logging.debug('Sync requested after dispose, ignoring.')
            return False

        config = self.settings.sync_config
        if config is None:
            logging.warning('Sync requested, but GitHub sync is not configured.')
            self.notifications.add_notification(
                status.get_message(status.Status.SyncNotConfigured),
                NotificationType.Warning,
            )
            signals.syncConfigurationRequested.emit()
            return False

        covered = self.expenses.pending_changes
        covered_settings = self.settings.sync_flags.has_unsynced_settings_changes

        request = SyncRequest(
            config=config,
            expenses=tuple(self.expenses.records()),
            settings=self.settings.settings if self.settings.sync_flags.sync_settings_enabled else None,
        )

        if not self.machine.sync(request):
            logging.debug(f'Sync not started, machine is {self.machine.state}.')
            return False

        self._covered = covered
        self._covered_settings = covered_settings
        return True

    def _on_sync_notification(self, outcome: SyncOutcome) -> None:
        self.notifications.add_notification(
            format_sync_message(outcome),
            NotificationType.Success,
            SYNC_NOTIFICATION_DURATION,
        )

    @QtCore.Slot(object)
    def _on_sync_succeeded(self, outcome: SyncOutcome) -> None:
        if outcome.expenses is not None:
            logging.debug(f'Applying {len(outcome.expenses)} synced expenses.')
            self.expenses.replace_expenses(outcome.expenses)
        self.expenses.clear_pending_changes(self._covered)

        if self.settings.sync_flags.sync_settings_enabled:
            if outcome.settings is not None:
                self._apply_synced_settings(outcome.settings)
            if self._covered_settings:
                self.settings.clear_settings_change_flag()
        self._covered = None
        self._covered_settings = False

    def _apply_synced_settings(self, values: dict) -> None:
        try:
            self.settings.replace_settings(values)
        except (TypeError, ValueError) as e:
            logging.error(f'Synced settings were not applied: {e}')
            self.notifications.add_notification(
                f'Synced settings were not applied: {e}', NotificationType.Warning
            )

    @QtCore.Slot(str)
    def _on_sync_failed(self, message: str) -> None:
        self._covered = None
        self._covered_settings = False
        self.notifications.add_notification(f'Sync failed: {message}', NotificationType.Error)

    @QtCore.Slot(str)
    def _on_expense_mutated(self, kind: str) -> None:
        if autosync.should_auto_sync(
                self.settings.settings, self.settings.sync_config, AutoSyncTiming.OnExpenseEntry
        ):
            logging.debug(f'Running auto-sync after expense {kind}.')
            self.request_sync()

    def _emit_pending_count(self, *args) -> None:
        value = self.pending_count
        if value == self._last_count:
            return
        self._last_count = value
        self.pendingCountChanged.emit(value)


def get_provider(transport: Optional[Transport] = None,
                 storage: Optional[storage_lib.Storage] = None,
                 skip_initialization: bool = False) -> StoreProvider:
    """Return the shared provider, creating and initializing it on first access.

    Arguments are only used by the call that creates the provider.
    """
    global _provider
    with _provider_lock:
        if _provider is None:
            provider = StoreProvider(transport=transport, storage=storage)
            provider.init(skip_initialization=skip_initialization)
            _provider = provider
        return _provider


def dispose_provider() -> None:
    """Dispose the shared provider. The next get_provider() builds a fresh one."""
    global _provider
    with _provider_lock:
        if _provider is None:
            return
        _provider.dispose()
        _provider = None
