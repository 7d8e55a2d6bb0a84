"""Key-value storage backends used by the settings, UI-state and expense stores.

Every backend stores plain strings under string keys:

- :class:`QSettingsStorage` – persistent ini file backed by :class:`QtCore.QSettings`.
- :class:`MemoryStorage` – process-local dictionary, used by tests and previews.

Backends are called from the GUI thread and from effect workers, so each call
is serialized with a lock.
"""
import logging
import pathlib
import threading
from typing import Dict, Optional

from PySide6 import QtCore

from ..status import status

SYNC_TOKEN_KEY: str = 'github_pat'
SYNC_REPO_KEY: str = 'github_repo'
SYNC_BRANCH_KEY: str = 'github_branch'
APP_SETTINGS_KEY: str = 'app_settings'
SETTINGS_CHANGED_KEY: str = 'settings_changed'
EXPENSES_KEY: str = 'expenses'
PENDING_CHANGES_KEY: str = 'pending_changes'
PAYMENT_METHOD_EXPANDED_KEY: str = 'payment_method_section_expanded'
PAYMENT_INSTRUMENTS_EXPANDED_KEY: str = 'payment_instruments_section_expanded'


class Storage:
    """Interface of a string key-value store."""

    def get_item(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None if absent."""
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        """Remove key. Removing an absent key is a no-op."""
        raise NotImplementedError


class MemoryStorage(Storage):
    """Dictionary-backed storage."""

    def __init__(self, data: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(data or {})
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f'Storage values must be strings, got {type(value)}.')
        with self._lock:
            self._data[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class QSettingsStorage(Storage):
    """Ini-file storage backed by QSettings.

    A fresh QSettings object is created per call, since QSettings instances
    must not be shared between threads.

    Args:
        path: Path of the ini file. Parent directories are created on demand.
    """

    def __init__(self, path: str | pathlib.Path) -> None:
        self.path: pathlib.Path = pathlib.Path(path)
        self._lock = threading.Lock()

        if not self.path.parent.exists():
            logging.debug(f'Creating storage directory: {self.path.parent}')
            self.path.parent.mkdir(parents=True, exist_ok=True)

    def _settings(self) -> QtCore.QSettings:
        return QtCore.QSettings(str(self.path), QtCore.QSettings.IniFormat)

    def _verify(self, settings: QtCore.QSettings) -> None:
        settings.sync()
        if settings.status() != QtCore.QSettings.NoError:
            raise status.StorageUnavailableException(
                f'Could not write "{self.path}" ({settings.status()}).'
            )

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            settings = self._settings()
            if not settings.contains(key):
                return None
            value = settings.value(key)

        # Ini values containing commas may come back as string lists
        if isinstance(value, list):
            return ', '.join(str(v) for v in value)
        return None if value is None else str(value)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f'Storage values must be strings, got {type(value)}.')
        with self._lock:
            settings = self._settings()
            settings.setValue(key, value)
            self._verify(settings)

    def remove_item(self, key: str) -> None:
        with self._lock:
            settings = self._settings()
            settings.remove(key)
            self._verify(settings)
