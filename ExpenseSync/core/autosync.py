"""Automatic sync policy."""
import logging
from typing import Any, Dict, Optional

from ..settings.lib import AutoSyncTiming, SyncConfig


def should_auto_sync(settings: Dict[str, Any], config: Optional[SyncConfig], timing: AutoSyncTiming | str) -> bool:
    """Decide whether an automatic sync should run at the given moment.

    Args:
        settings: The current application settings.
        config: The stored sync configuration, or None.
        timing: The moment being considered.

    Returns:
        bool: True when auto-sync is enabled for exactly this timing and sync is configured.
    """
    timing = AutoSyncTiming(timing)
    if not settings.get('auto_sync_enabled'):
        return False
    if settings.get('auto_sync_timing') != timing:
        return False
    if config is None:
        logging.debug('Auto-sync enabled but GitHub sync is not configured.')
        return False
    return True
