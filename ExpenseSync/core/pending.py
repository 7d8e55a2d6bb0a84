"""Pending-change counting for the sync badge.

Both functions are pure: callers re-evaluate them whenever the expense
counters or the settings flags change.
"""
import dataclasses

from ..settings.lib import SettingsSyncFlags

SYNCING_TEXT: str = 'Syncing...'
SYNC_NOW_TEXT: str = 'Sync Now'


@dataclasses.dataclass(frozen=True)
class PendingChanges:
    """Local expense mutations not yet covered by a successful sync."""
    added: int = 0
    edited: int = 0
    deleted: int = 0

    def __post_init__(self) -> None:
        for field in dataclasses.fields(self):
            value = getattr(self, field.name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f'PendingChanges.{field.name} must be a non-negative int, got {value!r}.')

    @property
    def total(self) -> int:
        return self.added + self.edited + self.deleted

    def __sub__(self, other: 'PendingChanges') -> 'PendingChanges':
        """Remove the changes covered by other, never going below zero."""
        return PendingChanges(
            added=max(self.added - other.added, 0),
            edited=max(self.edited - other.edited, 0),
            deleted=max(self.deleted - other.deleted, 0),
        )


def count(pending: PendingChanges, flags: SettingsSyncFlags) -> int:
    """Number of unsynced changes shown on the sync badge.

    Unsynced settings count as a single change, and only when settings take
    part in sync.
    """
    settings_pending = flags.sync_settings_enabled and flags.has_unsynced_settings_changes
    return pending.added + pending.edited + pending.deleted + (1 if settings_pending else 0)


def sync_button_text(is_syncing: bool, pending_count: int) -> str:
    """Label of the sync button."""
    if is_syncing:
        return SYNCING_TEXT
    if pending_count > 0:
        return f'{SYNC_NOW_TEXT} ({pending_count})'
    return SYNC_NOW_TEXT
