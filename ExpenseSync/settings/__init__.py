"""
Settings package: preferences, sync configuration and storage.

This package provides:

- :mod:`ExpenseSync.settings.lib` – Settings store, sync configuration validation and form pre-fill.
- :mod:`ExpenseSync.settings.storage` – Key-value storage backends and storage keys.
- :mod:`ExpenseSync.settings.ui_state` – Device-local UI preferences.
"""
