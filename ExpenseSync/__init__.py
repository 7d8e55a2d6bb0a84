"""
ExpenseSync: the sync subsystem of an offline-first expense tracker backed by a GitHub repository.

This package provides:

- :mod:`ExpenseSync.core` – The sync state machine, pending-change counting, sync notifications, the expense ledger and the store provider.
- :mod:`ExpenseSync.settings` – Application settings, the GitHub sync configuration and key-value storage.
- :mod:`ExpenseSync.status` – Status codes and the exceptions raised across the package.
- :mod:`ExpenseSync.log` – In-app logging with a bounded in-memory log tank.
- :mod:`ExpenseSync.ui` – Application-wide Qt signals.

Use :func:`ExpenseSync.core.provider.get_provider` to obtain the shared stores.
"""

import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('ExpenseSync requires Python 3.11 or higher.')

__version__ = '0.1.0'
__author__ = 'Gergely Wootsch'
__license__ = 'GPL-3.0'
__copyright__ = 'Copyright (C) 2025 Gergely Wootsch'
__description__ = 'ExpenseSync: GitHub-backed sync for an offline-first expense tracker.'
__url__ = 'https://github.com/wgergely/ExpenseTracker'
__email__ = 'hello+ExpenseTracker@gergely-wootsch.com'

from .log import log

log.setup_logging()
