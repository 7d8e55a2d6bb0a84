"""Tests for application settings, the sync configuration and the storage backends.

Run:
    python -m unittest tests.test_settings
"""
import json

from ExpenseSync.settings import lib
from ExpenseSync.settings import storage as storage_lib
from ExpenseSync.status import status
from tests.base import BaseTestCase, VALID_CONFIG, VALID_TOKEN, mute_ui_signals


class FailingStorage(storage_lib.MemoryStorage):
    """Memory storage whose writes fail on demand."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    def set_item(self, key, value):
        if self.fail_writes:
            raise status.StorageUnavailableException('disk full')
        super().set_item(key, value)


class FailOnKeyStorage(storage_lib.MemoryStorage):
    """Memory storage that refuses to write one key."""

    def __init__(self, key):
        super().__init__()
        self.key = key
        self.armed = False

    def set_item(self, key, value):
        if self.armed and key == self.key:
            raise OSError(f'cannot write {key}')
        super().set_item(key, value)


class FormPrefillTests(BaseTestCase):

    def test_unconfigured(self):
        form = lib.form_prefill(None)
        self.assertEqual(
            (form.token, form.repo, form.branch, form.is_configured),
            ('', '', 'main', False),
        )

    def test_configured(self):
        config = lib.SyncConfig(VALID_TOKEN, 'octo/expenses', 'data')
        form = lib.form_prefill(config)
        self.assertEqual(
            (form.token, form.repo, form.branch, form.is_configured),
            (VALID_TOKEN, 'octo/expenses', 'data', True),
        )

    def test_token_is_masked_in_repr(self):
        self.assertNotIn(VALID_TOKEN, repr(VALID_CONFIG))


class SyncConfigValidationTests(BaseTestCase):

    def test_valid(self):
        self.assertEqual(lib.get_sync_config_errors(VALID_TOKEN, 'octo/expenses', 'feature/x'), {})
        for prefix in lib.GITHUB_TOKEN_PREFIXES:
            self.assertNotIn('token', lib.get_sync_config_errors(f'{prefix}abc', 'a/b', 'main'))

    def test_required_fields(self):
        errors = lib.get_sync_config_errors('', '', '')
        self.assertEqual(errors, {
            'token': 'Token is required',
            'repo': 'Repository is required',
            'branch': 'Branch is required',
        })

    def test_invalid_formats(self):
        errors = lib.get_sync_config_errors('abc123', 'expenses', 'bad branch')
        self.assertEqual(errors['token'], 'Invalid token format')
        self.assertEqual(errors['repo'], 'Repository must be in format: owner/repo')
        self.assertEqual(errors['branch'], 'Invalid branch name')

    def test_branch_with_double_slash(self):
        self.assertIn('branch', lib.get_sync_config_errors(VALID_TOKEN, 'a/b', 'feature//x'))

    def test_validate_raises(self):
        with mute_ui_signals():
            with self.assertRaises(status.SyncConfigInvalidException) as ctx:
                lib.validate_sync_config(VALID_TOKEN, 'no-slash', 'main')
        self.assertEqual(list(ctx.exception.errors), ['repo'])


class SyncConfigStoreTests(BaseTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.store = lib.SettingsStore(self.storage)

    def test_load_unconfigured(self):
        self.assertIsNone(self.store.load_sync_config())
        self.assertIsNone(self.store.sync_config)

    def test_partial_config_is_unconfigured(self):
        self.storage.set_item(storage_lib.SYNC_TOKEN_KEY, VALID_TOKEN)
        self.storage.set_item(storage_lib.SYNC_REPO_KEY, 'octo/expenses')
        self.assertIsNone(self.store.load_sync_config())

    def test_round_trip(self):
        self.store.save_sync_config(VALID_CONFIG)
        self.assertEqual(self.store.sync_config, VALID_CONFIG)

        other = lib.SettingsStore(self.storage)
        self.assertEqual(other.load_sync_config(), VALID_CONFIG)

    def test_round_trip_ini_storage(self):
        storage = self.ini_storage()
        lib.SettingsStore(storage).save_sync_config(VALID_CONFIG)

        loaded = lib.SettingsStore(self.ini_storage()).load_sync_config()
        self.assertEqual(loaded, VALID_CONFIG)
        self.assertTrue(self.config_paths.storage_path.exists())

    def test_invalid_config_is_not_saved(self):
        with mute_ui_signals():
            with self.assertRaises(status.SyncConfigInvalidException):
                self.store.save_sync_config(lib.SyncConfig('token', 'octo/expenses', 'main'))
        self.assertIsNone(self.storage.get_item(storage_lib.SYNC_TOKEN_KEY))
        self.assertIsNone(self.store.sync_config)

    def test_failed_write_keeps_previous_config(self):
        storage = FailingStorage()
        store = lib.SettingsStore(storage)
        store.save_sync_config(VALID_CONFIG)

        storage.fail_writes = True
        with mute_ui_signals():
            with self.assertRaises(status.StorageUnavailableException):
                store.save_sync_config(lib.SyncConfig(VALID_TOKEN, 'octo/other', 'main'))
        self.assertEqual(store.sync_config, VALID_CONFIG)

    def test_failed_write_rolls_back_stored_keys(self):
        storage = FailOnKeyStorage(storage_lib.SYNC_REPO_KEY)
        store = lib.SettingsStore(storage)
        store.save_sync_config(VALID_CONFIG)

        storage.armed = True
        with self.assertRaises(OSError):
            store.save_sync_config(lib.SyncConfig('ghp_NEWTOKEN', 'other/repo', 'dev'))

        reloaded = lib.SettingsStore(storage).load_sync_config()
        self.assertEqual(reloaded, VALID_CONFIG)
        self.assertEqual(store.sync_config, VALID_CONFIG)

    def test_failed_first_save_leaves_nothing_stored(self):
        storage = FailOnKeyStorage(storage_lib.SYNC_BRANCH_KEY)
        storage.armed = True
        store = lib.SettingsStore(storage)

        with self.assertRaises(OSError):
            store.save_sync_config(VALID_CONFIG)

        self.assertEqual(storage.keys(), [])
        self.assertIsNone(lib.SettingsStore(storage).load_sync_config())

    def test_clear(self):
        changes = []
        self.store.syncConfigChanged.connect(changes.append)

        self.store.save_sync_config(VALID_CONFIG)
        self.store.clear_sync_config()

        self.assertIsNone(self.store.sync_config)
        self.assertIsNone(self.store.load_sync_config())
        self.assertEqual(self.storage.keys(), [])
        self.assertEqual(changes, [VALID_CONFIG, None])


class SettingsStoreTests(BaseTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.store = lib.SettingsStore(self.storage)

    def test_defaults(self):
        self.store.initialize()
        settings = self.store.settings

        self.assertFalse(self.store.is_loading)
        self.assertEqual(settings['theme'], 'system')
        self.assertFalse(settings['sync_settings'])
        self.assertFalse(settings['auto_sync_enabled'])
        self.assertEqual(settings['auto_sync_timing'], 'on_launch')
        self.assertIsNone(settings['default_payment_method'])
        self.assertFalse(self.store.has_unsynced_changes)

    def test_setter_marks_changed_and_persists(self):
        self.store.initialize()
        future = self.store.set_theme('dark')

        # memory is updated before the write completes
        self.assertEqual(self.store.settings['theme'], 'dark')
        self.assertTrue(self.store.has_unsynced_changes)

        future.result(timeout=5)
        stored = json.loads(self.storage.get_item(storage_lib.APP_SETTINGS_KEY))
        self.assertEqual(stored['theme'], 'dark')
        self.assertEqual(self.storage.get_item(storage_lib.SETTINGS_CHANGED_KEY), 'true')

    def test_settings_survive_restart(self):
        self.store.initialize()
        self.store.set_sync_settings(True)
        self.store.set_default_payment_method('UPI')
        self.store.set_auto_sync_enabled(True).result(timeout=5)

        other = lib.SettingsStore(self.storage)
        other.initialize()
        self.assertTrue(other.settings['sync_settings'])
        self.assertEqual(other.settings['default_payment_method'], 'UPI')
        self.assertTrue(other.settings['auto_sync_enabled'])
        self.assertTrue(other.has_unsynced_changes)
        self.assertEqual(
            other.sync_flags,
            lib.SettingsSyncFlags(sync_settings_enabled=True, has_unsynced_settings_changes=True),
        )

    def test_invalid_values_are_rejected(self):
        self.store.initialize()
        with self.assertRaises(ValueError):
            self.store.set_theme('blue')
        with self.assertRaises(ValueError):
            self.store.set_default_payment_method('Cheque')
        with self.assertRaises(ValueError):
            self.store.update_settings({'unknown': 1})
        self.assertEqual(self.store.settings['theme'], 'system')
        self.assertFalse(self.store.has_unsynced_changes)

    def test_replace_settings_is_synced(self):
        self.store.initialize()
        self.store.set_theme('dark')
        self.store.replace_settings({'theme': 'light', 'auto_sync_timing': 'on_expense_entry'}).result(timeout=5)

        self.assertEqual(self.store.settings['theme'], 'light')
        self.assertFalse(self.store.has_unsynced_changes)
        self.assertIsNone(self.storage.get_item(storage_lib.SETTINGS_CHANGED_KEY))

    def test_replace_settings_drops_unknown_keys(self):
        self.store.initialize()
        self.store.set_default_payment_method('UPI')
        self.store.replace_settings({'theme': 'dark', 'font_size': 14, 'version': 0}).result(timeout=5)

        settings = self.store.settings
        self.assertEqual(settings['theme'], 'dark')
        self.assertNotIn('font_size', settings)
        self.assertEqual(settings['version'], lib.SETTINGS_VERSION)
        # keys missing from the replacement fall back to defaults
        self.assertIsNone(settings['default_payment_method'])

        with self.assertRaises(TypeError):
            self.store.replace_settings(['theme', 'dark'])
        with self.assertRaises(ValueError):
            self.store.replace_settings({'theme': 'sepia'})
        self.assertEqual(self.store.settings['theme'], 'dark')

    def test_clear_settings_change_flag(self):
        self.store.initialize()
        flags = []
        self.store.unsyncedChangesChanged.connect(flags.append)

        self.store.set_theme('light')
        self.store.clear_settings_change_flag().result(timeout=5)

        self.assertEqual(flags, [True, False])
        self.assertIsNone(self.storage.get_item(storage_lib.SETTINGS_CHANGED_KEY))

    def test_malformed_settings_fall_back_to_defaults(self):
        self.storage.set_item(storage_lib.APP_SETTINGS_KEY, '{not json')
        with mute_ui_signals():
            self.store.initialize()
        self.assertEqual(self.store.settings['theme'], 'system')
        self.assertFalse(self.store.is_loading)

    def test_older_settings_are_migrated(self):
        self.storage.set_item(storage_lib.APP_SETTINGS_KEY, json.dumps({'theme': 'dark', 'version': 1}))
        self.store.initialize()
        self.assertEqual(self.store.settings['theme'], 'dark')
        self.assertEqual(self.store.settings['version'], lib.SETTINGS_VERSION)
        self.assertFalse(self.store.settings['auto_sync_enabled'])

    def test_initialize_loads_sync_config(self):
        lib.SettingsStore(self.storage).save_sync_config(VALID_CONFIG)
        self.store.initialize()
        self.assertEqual(self.store.sync_config, VALID_CONFIG)

    def test_effective_theme(self):
        self.assertEqual(lib.effective_theme({'theme': 'system'}, 'dark'), 'dark')
        self.assertEqual(lib.effective_theme({'theme': 'system'}, 'unknown'), 'light')
        self.assertEqual(lib.effective_theme({'theme': 'light'}, 'dark'), 'light')


class StorageTests(BaseTestCase):

    def test_memory_storage(self):
        self.storage.set_item('a', '1')
        self.assertEqual(self.storage.get_item('a'), '1')
        self.storage.remove_item('a')
        self.storage.remove_item('a')
        self.assertIsNone(self.storage.get_item('a'))

    def test_values_must_be_strings(self):
        with self.assertRaises(TypeError):
            self.storage.set_item('a', 1)
        with self.assertRaises(TypeError):
            self.ini_storage().set_item('a', True)

    def test_ini_storage(self):
        storage = self.ini_storage()
        self.assertIsNone(storage.get_item('missing'))

        storage.set_item('note', 'rent, utilities')
        self.assertEqual(self.ini_storage().get_item('note'), 'rent, utilities')

        storage.remove_item('note')
        self.assertIsNone(storage.get_item('note'))

    def test_config_paths(self):
        self.assertTrue(self.config_paths.config_dir.is_dir())
        self.assertEqual(self.config_paths.storage_path.name, 'storage.ini')
