"""Settings library for application preferences and the GitHub sync configuration.

Provides:
    - ConfigPaths: the writable application data locations.
    - SyncConfig, SettingsSyncFlags and SyncConfigForm value types.
    - Schema validation for the stored application settings and the sync configuration.
    - SettingsStore: the process-wide owner of settings, the settings-changed flag
      and the sync configuration.
"""

import dataclasses
import datetime
import enum
import json
import logging
import pathlib
import re
from typing import Any, Dict, List, Optional

from PySide6 import QtCore

from . import storage as storage_lib
from ..core.effects import run_effect
from ..status import status

app_name: str = 'ExpenseSync'

SETTINGS_VERSION: int = 2
DEFAULT_BRANCH: str = 'main'

#: Token prefixes issued by GitHub: classic PATs, fine-grained PATs and OAuth tokens.
GITHUB_TOKEN_PREFIXES: List[str] = ['ghp_', 'github_pat_', 'gho_']
REPO_PATTERN: str = r'[a-zA-Z0-9_.-]+/[a-zA-Z0-9_.-]+'
BRANCH_PATTERN: str = r'[a-zA-Z0-9_./-]+'


class ThemePreference(enum.StrEnum):
    """Colour scheme preference."""
    Light = 'light'
    Dark = 'dark'
    System = 'system'


class AutoSyncTiming(enum.StrEnum):
    """When an automatic sync is attempted."""
    OnLaunch = 'on_launch'
    OnExpenseEntry = 'on_expense_entry'


PAYMENT_METHODS: List[str] = [
    'Cash',
    'Amazon Pay',
    'UPI',
    'Credit Card',
    'Debit Card',
    'Net Banking',
    'Other',
]

SETTINGS_SCHEMA: Dict[str, Any] = {
    'theme': {'type': str, 'required': True, 'allowed_values': [str(v) for v in ThemePreference]},
    'sync_settings': {'type': bool, 'required': True},
    'default_payment_method': {'type': (str, type(None)), 'required': False, 'allowed_values': PAYMENT_METHODS},
    'auto_sync_enabled': {'type': bool, 'required': True},
    'auto_sync_timing': {'type': str, 'required': True, 'allowed_values': [str(v) for v in AutoSyncTiming]},
    'updated_at': {'type': str, 'required': True},
    'version': {'type': int, 'required': True},
}


def now_str() -> str:
    """Return current UTC date and time as an ISO 8601 string."""
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def default_settings() -> Dict[str, Any]:
    """Return a fresh copy of the default application settings."""
    return {
        'theme': str(ThemePreference.System),
        'sync_settings': False,
        'default_payment_method': None,
        'auto_sync_enabled': False,
        'auto_sync_timing': str(AutoSyncTiming.OnLaunch),
        'updated_at': now_str(),
        'version': SETTINGS_VERSION,
    }


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Identity of the remote repository and the credential used to reach it."""
    token: str
    repo: str
    branch: str

    def __repr__(self) -> str:
        # Never leak the credential into logs
        return f'SyncConfig(token=\'***\', repo={self.repo!r}, branch={self.branch!r})'


@dataclasses.dataclass(frozen=True)
class SettingsSyncFlags:
    """Whether settings take part in sync, and whether they drifted since the last one."""
    sync_settings_enabled: bool = False
    has_unsynced_settings_changes: bool = False


@dataclasses.dataclass(frozen=True)
class SyncConfigForm:
    """Initial values of the sync configuration form."""
    token: str
    repo: str
    branch: str
    is_configured: bool


def form_prefill(config: Optional[SyncConfig]) -> SyncConfigForm:
    """Derive the editable form fields from a loaded configuration.

    Args:
        config: The stored configuration, or None when unconfigured.

    Returns:
        SyncConfigForm: Field values, falling back to empty strings and the default branch.
    """
    if config is None:
        return SyncConfigForm(token='', repo='', branch=DEFAULT_BRANCH, is_configured=False)
    return SyncConfigForm(
        token=config.token,
        repo=config.repo,
        branch=config.branch,
        is_configured=True,
    )


def get_sync_config_errors(token: Any, repo: Any, branch: Any) -> Dict[str, str]:
    """Validate the raw sync configuration fields.

    Only the first error of each field is reported.

    Returns:
        dict[str, str]: Field name to error message. Empty when the values are valid.
    """
    errors: Dict[str, str] = {}

    if not isinstance(token, str) or not token:
        errors['token'] = 'Token is required'
    elif not any(token.startswith(p) for p in GITHUB_TOKEN_PREFIXES):
        errors['token'] = 'Invalid token format'

    if not isinstance(repo, str) or not repo:
        errors['repo'] = 'Repository is required'
    elif not re.fullmatch(REPO_PATTERN, repo):
        errors['repo'] = 'Repository must be in format: owner/repo'

    if not isinstance(branch, str) or not branch:
        errors['branch'] = 'Branch is required'
    elif not re.fullmatch(BRANCH_PATTERN, branch) or '//' in branch:
        errors['branch'] = 'Invalid branch name'

    return errors


def validate_sync_config(token: Any, repo: Any, branch: Any) -> SyncConfig:
    """Build a SyncConfig from form input.

    Raises:
        status.SyncConfigInvalidException: If any field is invalid.
    """
    errors = get_sync_config_errors(token, repo, branch)
    if errors:
        raise status.SyncConfigInvalidException(errors)
    return SyncConfig(token=token, repo=repo, branch=branch)


def validate_settings(data: Dict[str, Any]) -> None:
    """Validate application settings against SETTINGS_SCHEMA.

    Raises:
        TypeError: If data is not a dict or a value has the wrong type.
        ValueError: If a required key is missing or a value is not allowed.
    """
    if not isinstance(data, dict):
        msg: str = f'Settings must be a dict, got {type(data)}.'
        logging.error(msg)
        raise TypeError(msg)

    for key, specs in SETTINGS_SCHEMA.items():
        if key not in data:
            if specs['required']:
                msg = f'Missing required setting: {key}'
                logging.error(msg)
                raise ValueError(msg)
            continue

        value = data[key]
        # bool is an int subclass, keep them apart
        if isinstance(value, bool) and specs['type'] is int:
            msg = f'Setting "{key}" must be {specs["type"]}, got {type(value)}.'
            logging.error(msg)
            raise TypeError(msg)
        if not isinstance(value, specs['type']):
            msg = f'Setting "{key}" must be {specs["type"]}, got {type(value)}.'
            logging.error(msg)
            raise TypeError(msg)
        if value is not None and 'allowed_values' in specs and value not in specs['allowed_values']:
            msg = f'Setting "{key}" must be one of {specs["allowed_values"]}, got "{value}".'
            logging.error(msg)
            raise ValueError(msg)

    unknown = set(data) - set(SETTINGS_SCHEMA)
    if unknown:
        msg = f'Unknown settings: {sorted(unknown)}'
        logging.error(msg)
        raise ValueError(msg)


def effective_theme(settings: Dict[str, Any], system_scheme: str) -> str:
    """Resolve the 'system' theme preference to the current system colour scheme."""
    if settings.get('theme') == ThemePreference.System:
        return system_scheme if system_scheme in (ThemePreference.Light, ThemePreference.Dark) else 'light'
    return settings.get('theme')


class ConfigPaths:
    """Application file paths.

    Resolves the writable app data directory and makes sure the config
    directory exists.
    """

    def __init__(self, root: Optional[str | pathlib.Path] = None) -> None:
        """Set up application paths.

        Args:
            root: Optional override of the app data directory.
        """
        QtCore.QCoreApplication.setApplicationName(app_name)
        QtCore.QCoreApplication.setOrganizationName('')

        if root is None:
            p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
            root = p
        app_data_dir = pathlib.Path(root)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.storage_path: pathlib.Path = self.config_dir / 'storage.ini'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        if not self.config_dir.exists():
            logging.debug(f'Creating config directory: {self.config_dir}')
            self.config_dir.mkdir(parents=True, exist_ok=True)


class SettingsStore(QtCore.QObject):
    """Owner of application settings and the GitHub sync configuration.

    Preference setters update memory at once, emit :attr:`settingsChanged`, and
    return the :class:`concurrent.futures.Future` of their storage write. The
    sync configuration is written synchronously and only committed to memory
    once the write succeeded.

    Signals:
        settingsChanged (dict): Emitted with a copy of the new settings.
        unsyncedChangesChanged (bool): Emitted when the settings-changed flag flips.
        syncConfigChanged (object): Emitted with the new SyncConfig, or None.
    """
    settingsChanged = QtCore.Signal(dict)
    unsyncedChangesChanged = QtCore.Signal(bool)
    syncConfigChanged = QtCore.Signal(object)

    def __init__(self, storage: storage_lib.Storage, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.storage = storage

        self._settings: Dict[str, Any] = default_settings()
        self._has_unsynced_changes: bool = False
        self._sync_config: Optional[SyncConfig] = None
        self._is_loading: bool = True

    @property
    def settings(self) -> Dict[str, Any]:
        return dict(self._settings)

    @property
    def has_unsynced_changes(self) -> bool:
        return self._has_unsynced_changes

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def sync_config(self) -> Optional[SyncConfig]:
        return self._sync_config

    @property
    def sync_flags(self) -> SettingsSyncFlags:
        """Flags consumed by the pending-changes count."""
        return SettingsSyncFlags(
            sync_settings_enabled=bool(self._settings.get('sync_settings')),
            has_unsynced_settings_changes=self._has_unsynced_changes,
        )

    def initialize(self) -> None:
        """Hydrate settings, the changed flag and the sync configuration from storage.

        Unreadable or malformed settings fall back to the defaults.
        """
        try:
            settings = self._read_settings()
            has_changes = self.storage.get_item(storage_lib.SETTINGS_CHANGED_KEY) == 'true'
        except Exception as ex:
            logging.warning(f'Failed to initialize settings, using defaults: {ex}')
            settings = default_settings()
            has_changes = False

        self._settings = settings
        self._is_loading = False
        self._set_unsynced(has_changes)
        self.settingsChanged.emit(self.settings)

        try:
            self.load_sync_config()
        except Exception as ex:
            logging.warning(f'Failed to load the sync configuration: {ex}')

    def _read_settings(self) -> Dict[str, Any]:
        stored = self.storage.get_item(storage_lib.APP_SETTINGS_KEY)
        if not stored:
            logging.debug('No stored settings found, using defaults.')
            return default_settings()

        try:
            data = json.loads(stored)
        except json.JSONDecodeError as ex:
            raise status.SettingsInvalidException from ex

        # Settings written by older versions may lack newer keys
        merged = default_settings()
        if isinstance(data, dict):
            merged.update({k: v for k, v in data.items() if k in SETTINGS_SCHEMA})
        merged['version'] = SETTINGS_VERSION

        try:
            validate_settings(merged)
        except (TypeError, ValueError) as ex:
            raise status.SettingsInvalidException(str(ex)) from ex
        return merged

    def _set_unsynced(self, value: bool) -> None:
        if self._has_unsynced_changes == value:
            return
        self._has_unsynced_changes = value
        self.unsyncedChangesChanged.emit(value)

    def _write_settings(self, settings: Dict[str, Any], changed: bool) -> None:
        self.storage.set_item(storage_lib.APP_SETTINGS_KEY, json.dumps(settings, ensure_ascii=False))
        if changed:
            self.storage.set_item(storage_lib.SETTINGS_CHANGED_KEY, 'true')
        else:
            self.storage.remove_item(storage_lib.SETTINGS_CHANGED_KEY)

    def _apply(self, updates: Dict[str, Any], changed: bool):
        new_settings = self.settings
        new_settings.update(updates)
        new_settings['updated_at'] = now_str()
        validate_settings(new_settings)

        self._settings = new_settings
        self._set_unsynced(changed)
        self.settingsChanged.emit(self.settings)

        return run_effect(self._write_settings, dict(new_settings), changed)

    def set_theme(self, theme: str):
        return self._apply({'theme': str(ThemePreference(theme))}, True)

    def set_sync_settings(self, enabled: bool):
        return self._apply({'sync_settings': bool(enabled)}, True)

    def set_default_payment_method(self, payment_method: Optional[str]):
        return self._apply({'default_payment_method': payment_method}, True)

    def set_auto_sync_enabled(self, enabled: bool):
        return self._apply({'auto_sync_enabled': bool(enabled)}, True)

    def set_auto_sync_timing(self, timing: str):
        return self._apply({'auto_sync_timing': str(AutoSyncTiming(timing))}, True)

    def update_settings(self, updates: Dict[str, Any]):
        """Merge updates into the settings and mark them as changed since the last sync."""
        return self._apply(dict(updates), True)

    def replace_settings(self, settings: Dict[str, Any]):
        """Replace all settings, e.g. with the copy downloaded by a sync.

        The result counts as synced, so the changed flag is cleared. Keys this
        version does not know are dropped and the version is set to the current one.
        """
        if not isinstance(settings, dict):
            raise TypeError(f'Settings must be a dict, got {type(settings)}.')
        merged = default_settings()
        merged.update({k: v for k, v in settings.items() if k in SETTINGS_SCHEMA})
        merged['version'] = SETTINGS_VERSION
        return self._apply(merged, False)

    def clear_settings_change_flag(self):
        """Clear the settings-changed flag after a successful sync."""
        self._set_unsynced(False)
        return run_effect(self.storage.remove_item, storage_lib.SETTINGS_CHANGED_KEY)

    def load_sync_config(self) -> Optional[SyncConfig]:
        """Read the sync configuration from storage.

        Returns:
            SyncConfig | None: The stored configuration, or None if any field is absent.
        """
        token = self.storage.get_item(storage_lib.SYNC_TOKEN_KEY)
        repo = self.storage.get_item(storage_lib.SYNC_REPO_KEY)
        branch = self.storage.get_item(storage_lib.SYNC_BRANCH_KEY)

        config = SyncConfig(token, repo, branch) if token and repo and branch else None
        logging.debug(f'Loaded sync configuration: {config!r}')
        self._set_sync_config(config)
        return config

    def save_sync_config(self, config: SyncConfig) -> None:
        """Validate and persist a sync configuration, then make it current.

        Raises:
            status.SyncConfigInvalidException: If a field is invalid. Nothing is written.
            Exception: Any storage error. Keys already written are rolled back, so the
                previous configuration stays current in memory and in storage.
        """
        validate_sync_config(config.token, config.repo, config.branch)

        values = {
            storage_lib.SYNC_TOKEN_KEY: config.token,
            storage_lib.SYNC_REPO_KEY: config.repo,
            storage_lib.SYNC_BRANCH_KEY: config.branch,
        }
        previous = {key: self.storage.get_item(key) for key in values}

        logging.debug(f'Saving sync configuration: {config!r}')
        try:
            for key, value in values.items():
                self.storage.set_item(key, value)
        except Exception as ex:
            logging.error(f'Error saving sync configuration: {ex}')
            self._restore_sync_config(previous)
            raise

        self._set_sync_config(config)

    def _restore_sync_config(self, previous: Dict[str, Optional[str]]) -> None:
        """Put back the stored keys as they were before a failed save."""
        for key, value in previous.items():
            try:
                if value is None:
                    self.storage.remove_item(key)
                else:
                    self.storage.set_item(key, value)
            except Exception as ex:
                logging.error(f'Could not restore "{key}" after a failed save: {ex}')

    def clear_sync_config(self) -> None:
        """Remove the stored sync configuration (disconnect)."""
        logging.debug('Clearing sync configuration.')
        for key in (storage_lib.SYNC_TOKEN_KEY, storage_lib.SYNC_REPO_KEY, storage_lib.SYNC_BRANCH_KEY):
            self.storage.remove_item(key)
        self._set_sync_config(None)

    def _set_sync_config(self, config: Optional[SyncConfig]) -> None:
        if config == self._sync_config:
            return
        self._sync_config = config
        self.syncConfigChanged.emit(config)
